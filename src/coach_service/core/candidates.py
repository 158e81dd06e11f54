"""Model candidate resolution for generation requests."""

from typing import Iterable, List, Optional

DEFAULT_MODEL_CANDIDATES = (
    # Widely available, fast models first
    "gemini-1.5-flash",
    "gemini-2.0-flash",
    "gemini-2.5-flash",
)


def resolve_model_candidates(
    preferred: Optional[str] = None,
    runtime_override: Optional[str] = None,
    configured_default: Optional[str] = None,
    defaults: Iterable[str] = DEFAULT_MODEL_CANDIDATES,
) -> List[str]:
    """
    Build the ordered, de-duplicated list of models to try.

    Priority: caller preference, runtime override, configured default,
    then the fixed fallback list. Blank entries are skipped and the first
    occurrence of a duplicate wins.

    Args:
        preferred: Explicit caller preference
        runtime_override: Override persisted at runtime
        configured_default: Deployment-configured default model
        defaults: Fixed fallback list

    Returns:
        Non-empty list of model identifiers

    Raises:
        ValueError: If no candidate remains
    """
    ordered = [preferred, runtime_override, configured_default, *defaults]
    candidates = list(dict.fromkeys(m.strip() for m in ordered if m and m.strip()))
    if not candidates:
        raise ValueError("No model candidates configured")
    return candidates
