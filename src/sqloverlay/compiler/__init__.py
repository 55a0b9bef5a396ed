"""Statement compilation: dialects, synthesis and the compile entry point."""

from sqloverlay.compiler.compiler import OverlayCompiler, compile_template
from sqloverlay.compiler.dialect import DialectDescriptor, get_dialect, list_dialects
from sqloverlay.compiler.models import CompiledStatement, PredicatePlacement
from sqloverlay.compiler.synthesizer import ScopePlan, SqlSynthesizer

__all__ = [
    "CompiledStatement",
    "DialectDescriptor",
    "OverlayCompiler",
    "PredicatePlacement",
    "ScopePlan",
    "SqlSynthesizer",
    "compile_template",
    "get_dialect",
    "list_dialects",
]
