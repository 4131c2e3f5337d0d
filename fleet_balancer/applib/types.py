from enum import Enum


class ScalingAction(Enum):
    NONE = 'none'
    SCALE_OUT = 'scale_out'
    SCALE_IN = 'scale_in'


class HostClassification(Enum):
    OVERUTILIZED = 'overutilized'
    UNDERUTILIZED = 'underutilized'
    BALANCED = 'balanced'


class CycleKind(Enum):
    SCALE = 'scale'
    REBALANCE = 'rebalance'
