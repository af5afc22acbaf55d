"""atomica Pipeline — check, translate, verify, backtranslate.

    result = verify(program)
    for error in result.errors:
        print(error)

Semantic diagnostics stop the pipeline before translation. Otherwise the
program is translated with a fresh TranslationContext, handed to the backend
and the backend's failures are mapped back to source-level errors. Failures
nothing claims are dropped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from atomica import ivl
from atomica.ast_nodes import Program
from atomica.backends import VerifierBackend, create_backend
from atomica.config import AtomicaConfig
from atomica.errors import AtomicaError, CompileError
from atomica.failures import VerificationFailure
from atomica.log import configure_logging
from atomica.semantic import SemanticAnalyser
from atomica.translator import ProgramTranslator, TranslationContext

logger = logging.getLogger(__name__)


@dataclass
class VerificationResult:
    """Everything one pipeline run produced."""
    errors: list[AtomicaError] = field(default_factory=list)
    ivl_program: Optional[ivl.Program] = None
    failures: list[VerificationFailure] = field(default_factory=list)

    @property
    def verified(self) -> bool:
        return not self.errors

    @property
    def dropped_failures(self) -> int:
        """Backend failures that no transformer turned into an error."""
        if self.ivl_program is None:
            return 0
        return len(self.failures) - len(self.errors)


def analyse(program: Program) -> tuple[SemanticAnalyser, list[AtomicaError]]:
    analyser = SemanticAnalyser(program)
    return analyser, analyser.errors


def verify(
    program: Program,
    config: Optional[AtomicaConfig] = None,
    backend: Optional[VerifierBackend] = None,
    raise_errors: bool = False,
) -> VerificationResult:
    """Run the full pipeline on one program.

    Without a backend one is created from ``config.backend`` and stopped
    again afterwards. A backend passed in is started if needed and left
    running. With ``raise_errors`` semantic diagnostics raise a CompileError
    instead of being returned.
    """
    config = config or AtomicaConfig()
    configure_logging(config.log_level)

    analyser, errors = analyse(program)
    if errors:
        logger.info("Semantic analysis reported %d error(s); skipping translation", len(errors))
        if raise_errors:
            raise CompileError(list(errors))
        return VerificationResult(errors=list(errors))

    context = TranslationContext(section_comments=config.section_comments)
    ivl_program = ProgramTranslator(analyser, context).translate()
    if config.emit_ivl:
        logger.debug("Translated program:\n%s", ivl.render_program(ivl_program))

    owned = backend is None
    if backend is None:
        backend = create_backend(config.backend, config.timeout_ms)
    if not backend.running:
        backend.start()
    try:
        logger.info("Verifying with backend %s", backend.name)
        failures = backend.verify(ivl_program)
    finally:
        if owned:
            backend.stop()

    verification_errors = context.backtranslator.translate_all(failures)
    logger.info(
        "%d failure(s) reported, %d error(s) after backtranslation",
        len(failures), len(verification_errors))
    return VerificationResult(
        errors=list(verification_errors), ivl_program=ivl_program, failures=failures)
