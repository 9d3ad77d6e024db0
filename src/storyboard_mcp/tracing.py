"""MLflow traces of storyboard runs, when ``mlflow-tracing`` is installed.

Each MCP tool call is a ``TOOL`` span and each analysis request a ``CHAIN``
span beneath it, tagged with the session generation, the analysis mode and
the video's MIME type. ``mlflow.gemini.autolog()`` adds the model call
itself as a child span, so a failed or stale generation can be matched to
the exact request Gemini saw.

Env vars (all optional):
    MLFLOW_TRACKING_URI: Where to store traces. Empty = tracing disabled.
    MLFLOW_EXPERIMENT_NAME: Experiment name (default ``video-storyboard-mcp``).
    GEMINI_TRACING_ENABLED: Set to ``"false"`` to force-disable even with a URI.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

try:
    import mlflow
    import mlflow.gemini

    _HAS_MLFLOW = True
except ImportError:
    _HAS_MLFLOW = False


def is_enabled() -> bool:
    if not _HAS_MLFLOW:
        return False
    from .config import get_config

    return get_config().tracing_enabled


def trace(
    func: Callable | None = None,
    *,
    name: str | None = None,
    span_type: str | None = None,
) -> Callable:
    """Wrap *func* in an MLflow span named *name* (default: the function name).

    Returns *func* unchanged when tracing is off, so undecorated behaviour
    and FastMCP's signature introspection are identical either way.
    """
    if func is None:
        return lambda f: trace(f, name=name, span_type=span_type)
    if not is_enabled():
        return func
    return mlflow.trace(func, name=name or func.__name__, span_type=span_type)


def tag_current_trace(**tags: Any) -> None:
    """Attach string tags to the active trace; ignored outside one."""
    if not is_enabled():
        return
    try:
        mlflow.update_current_trace(tags={k: str(v) for k, v in tags.items()})
    except Exception:
        logger.debug("Could not tag trace with %s", tags, exc_info=True)


def setup() -> bool:
    """Point MLflow at the configured store and turn on Gemini autologging.

    Returns True when traces will be recorded. A store that cannot be
    reached is logged and the server starts untraced.
    """
    if not is_enabled():
        logger.debug("Storyboard tracing off")
        return False

    from .config import get_config

    cfg = get_config()
    try:
        mlflow.set_tracking_uri(cfg.mlflow_tracking_uri)
        mlflow.set_experiment(cfg.mlflow_experiment_name)
        mlflow.gemini.autolog()
    except Exception:
        logger.warning("Storyboard tracing setup failed; continuing without traces", exc_info=True)
        return False
    logger.info(
        "Tracing storyboard runs to %s (experiment %s)",
        cfg.mlflow_tracking_uri, cfg.mlflow_experiment_name,
    )
    return True


def shutdown() -> None:
    """Flush traces still queued for async logging."""
    if not is_enabled():
        return
    try:
        mlflow.flush_trace_async_logging()
    except Exception:
        logger.warning("Storyboard trace flush failed", exc_info=True)
