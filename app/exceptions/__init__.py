# app/exceptions/__init__.py

from exceptions.domain_exceptions import (
    DomainException,
    InvalidArgumentException,
    UnauthorizedException,
    ForbiddenException,
    NotFoundException,
    InvalidStateException,
    ConflictException,
    TransientException
)

__all__ = [
    'DomainException',
    'InvalidArgumentException',
    'UnauthorizedException',
    'ForbiddenException',
    'NotFoundException',
    'InvalidStateException',
    'ConflictException',
    'TransientException'
]
