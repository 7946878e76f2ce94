"""Result values returned by bring-up stages."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

from sampleapp.bootstrap.exceptions import InitError

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful stage outcome carrying the (mutated) value."""

    value: T


@dataclass(frozen=True)
class Err:
    """Failed stage outcome carrying the stage error."""

    error: InitError


Result = Union[Ok[T], Err]

__all__ = ["Err", "Ok", "Result"]
