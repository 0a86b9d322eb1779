"""Checkout shim so ``import dam_hmm`` resolves to ``src/dam_hmm`` without installing."""

from __future__ import annotations

from pathlib import Path
from pkgutil import extend_path

__path__ = extend_path(__path__, __name__)  # type: ignore[name-defined]

_SRC_PACKAGE = Path(__file__).resolve().parents[1] / "src" / "dam_hmm"
if _SRC_PACKAGE.is_dir() and str(_SRC_PACKAGE) not in __path__:
    __path__.append(str(_SRC_PACKAGE))
