"""Shared constants: landmark indices, physical values, and numeric limits."""

from __future__ import annotations

LANDMARK_COUNT = 33

LEFT_SHOULDER = 11
RIGHT_SHOULDER = 12
LEFT_ELBOW = 13
RIGHT_ELBOW = 14
LEFT_WRIST = 15
RIGHT_WRIST = 16
LEFT_HIP = 23
RIGHT_HIP = 24
LEFT_KNEE = 25
RIGHT_KNEE = 26
LEFT_ANKLE = 27
RIGHT_ANKLE = 28
LEFT_TOE = 31
RIGHT_TOE = 32

USED_LANDMARKS = (
    LEFT_SHOULDER,
    RIGHT_SHOULDER,
    LEFT_ELBOW,
    RIGHT_ELBOW,
    LEFT_WRIST,
    RIGHT_WRIST,
    LEFT_HIP,
    RIGHT_HIP,
    LEFT_KNEE,
    RIGHT_KNEE,
    LEFT_ANKLE,
    RIGHT_ANKLE,
    LEFT_TOE,
    RIGHT_TOE,
)

GRAVITY_M_S2 = 9.81
DEFAULT_LANE_WIDTH_M = 1.22

# Normalized limb lengths are converted to centimetres with a fixed thigh length.
ASSUMED_THIGH_LENGTH_CM = 50.0

MIN_SIGNAL_RANGE = 1e-4
MIN_SIGNAL_SAMPLES = 5
HOMOGRAPHY_MIN_WEIGHT = 1e-10
REGRESSION_EPS = 1e-12
