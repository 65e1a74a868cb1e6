"""
Gambit Validation — field validators and the engine that runs them.
"""

from .engine import ValidationEngine
from .validators import (
    BaseValidator,
    RequiredValidator,
    EmailValidator,
    MinLengthValidator,
    MaxLengthValidator,
    MinValidator,
    MaxValidator,
    RegexValidator,
    TypeValidator,
    UrlValidator,
    DateValidator,
    ArrayValidator,
    CustomValidator,
    UniqueValidator,
    ExistsValidator,
)

__all__ = [
    "ValidationEngine",
    "BaseValidator",
    "RequiredValidator",
    "EmailValidator",
    "MinLengthValidator",
    "MaxLengthValidator",
    "MinValidator",
    "MaxValidator",
    "RegexValidator",
    "TypeValidator",
    "UrlValidator",
    "DateValidator",
    "ArrayValidator",
    "CustomValidator",
    "UniqueValidator",
    "ExistsValidator",
]
