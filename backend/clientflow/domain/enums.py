"""Domain Enumerations - Operators, value kinds and store policies"""
from enum import Enum


# Terminal sentinel used as a transition target and as currentStepId once finished
END_STEP_ID = "END"


class ConditionOperator(str, Enum):
    """Operators for condition evaluation"""
    EQUALS = "=="
    NOT_EQUALS = "!="
    GREATER_THAN = ">"
    GREATER_THAN_OR_EQUALS = ">="
    LESS_THAN = "<"
    LESS_THAN_OR_EQUALS = "<="


class ValueKind(str, Enum):
    """Kinds of tagged values compared by conditions"""
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    NULL = "null"


class InitializePolicy(str, Enum):
    """What initialize does when a record already exists for the client"""
    FAIL = "fail"            # Raise AlreadyExistsError
    OVERWRITE = "overwrite"  # Replace the existing record with a fresh one


class Environment(str, Enum):
    """Deployment environment"""
    DEVELOPMENT = "development"
    PRODUCTION = "production"
    TEST = "test"
