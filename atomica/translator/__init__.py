"""Translation of checked programs into the IVL.

    translator = ProgramTranslator(analyser, TranslationContext())
    program = translator.translate()

The translator must only be run on programs the semantic analyser reported no
errors for. A broken internal invariant raises ``InternalError``.
"""

from __future__ import annotations

from typing import Optional

from atomica import ivl
from atomica.semantic import SemanticAnalyser
from atomica.translator.context import OpenRegionEntry, TranslationContext
from atomica.translator.heap import HeapTranslator
from atomica.translator.main import MainTranslator
from atomica.translator.regions import RegionTranslator
from atomica.translator.rules import RuleTranslator


class ProgramTranslator(RuleTranslator, RegionTranslator, HeapTranslator, MainTranslator):
    """The complete program translator."""


def translate(analyser: SemanticAnalyser, context: Optional[TranslationContext] = None) -> ivl.Program:
    return ProgramTranslator(analyser, context).translate()


__all__ = ["ProgramTranslator", "TranslationContext", "OpenRegionEntry", "translate"]
