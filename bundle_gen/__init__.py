"""App manifest to deployment bundle compiler package."""

from .compiler import BatchResult, CompileFailure, compile_app, compile_batch
from .models import (
    AlternativeDependency,
    AppManifest,
    CaddyEntry,
    Container,
    OneDependency,
    OutputMetadata,
    ResultBundle,
)

__all__ = [
    "AlternativeDependency",
    "AppManifest",
    "BatchResult",
    "CaddyEntry",
    "CompileFailure",
    "Container",
    "OneDependency",
    "OutputMetadata",
    "ResultBundle",
    "compile_app",
    "compile_batch",
]
