"""
Build tasks for PocketBuild.

Each task is one swappable pipeline step:
- Dependency resolution
- Native (C/C++) compilation
- Resource compilation and linking
- Kotlin and Java compilation
- Bytecode conversion and release optimization
- Packaging and signing
"""

from .base import Strategy, StrategyOutcome, Task, run_strategies
from .dex import ConvertBytecodeTask
from .java import CompileJavaTask
from .kotlin import CompileKotlinTask
from .native import CompileNativeTask
from .package import PackageTask
from .r8 import OptimizeTask
from .resolve import ResolveDependenciesTask
from .resources import ProcessResourcesTask
from .sign import SignTask

__all__ = [
    'Strategy',
    'StrategyOutcome',
    'Task',
    'run_strategies',
    'ResolveDependenciesTask',
    'CompileNativeTask',
    'ProcessResourcesTask',
    'CompileKotlinTask',
    'CompileJavaTask',
    'ConvertBytecodeTask',
    'OptimizeTask',
    'PackageTask',
    'SignTask',
]
