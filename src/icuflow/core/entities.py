"""Core entity definitions for the ICU model.

Enums used across the codebase, placed here to avoid circular imports.
Entity attributes are numeric, so enums are IntEnums and are stored on
entities by value.
"""

from enum import IntEnum


class AdmissionType(IntEnum):
    """How a patient reaches the ICU."""
    ELECTIVE = 1    # Planned admission (e.g. after scheduled surgery)
    EMERGENCY = 2   # Unplanned admission


class AcuityLevel(IntEnum):
    """Clinical severity tiers. Higher value = sicker patient."""
    L0 = 0  # Ready for discharge, still occupying a bed
    L1 = 1  # Ward-level care
    L2 = 2  # High dependency, 1 nurse : 2 patients
    L3 = 3  # Intensive care, 1 nurse : 1 patient


# Attribute key holding the days a patient spends at each level
ACUITY_DAY_KEYS = {
    AcuityLevel.L3: "l3_days",
    AcuityLevel.L2: "l2_days",
    AcuityLevel.L1: "l1_days",
    AcuityLevel.L0: "l0_days",
}

# Half-nurse units required at each level
DEFAULT_NURSE_UNITS = {
    AcuityLevel.L3: 2,
    AcuityLevel.L2: 1,
    AcuityLevel.L1: 0,
    AcuityLevel.L0: 0,
}
