"""Maps raw transaction status errors onto FailureReason."""
from __future__ import annotations

from typing import Any

from services.errors import FailureReason

CUSTOM_CODE_REASONS = {
    1: FailureReason.INSUFFICIENT_FUNDS,
    6002: FailureReason.SLIPPAGE_EXCEEDED_INPUT,
    6003: FailureReason.SLIPPAGE_EXCEEDED_OUTPUT,
}


def classify_instruction_error(err: Any) -> FailureReason:
    """Classify the ``err`` field of a signature status.

    Instruction errors arrive as ``{"InstructionError": [index, detail]}`` where
    ``detail`` is either a bare string (``"IllegalOwner"``) or
    ``{"Custom": code}``. Anything that does not fit resolves to a stable
    default rather than leaking the raw code.
    """
    if not isinstance(err, dict) or 'InstructionError' not in err:
        return FailureReason.UNCLASSIFIED_ERROR

    payload = err['InstructionError']
    if not isinstance(payload, (list, tuple)) or len(payload) < 2:
        return FailureReason.UNCLASSIFIED_ERROR
    detail = payload[1]

    if detail == 'IllegalOwner':
        return FailureReason.OWNER_NOT_ALLOWED

    if isinstance(detail, dict) and 'Custom' in detail:
        return CUSTOM_CODE_REASONS.get(detail['Custom'], FailureReason.UNKNOWN_INSTRUCTION_ERROR)

    return FailureReason.UNCLASSIFIED_ERROR
