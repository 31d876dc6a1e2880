"""Service layer exports."""

from .backend import BeanDraft, BeanFilter, BeansBackend, BeanUpdate
from .cli_backend import BeansCliBackend
from .mutable import MutableBackend

__all__ = ["BeansBackend", "BeanFilter", "BeanDraft", "BeanUpdate", "BeansCliBackend", "MutableBackend"]
