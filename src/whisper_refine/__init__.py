"""
Local Refine - rewrite voice transcriptions with a local LLM

Raw transcription -> profile prompt -> Ollama or OpenAI-compatible server -> polished text.
Any failure along the way hands back the raw transcription untouched.
"""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("local-refine")
except PackageNotFoundError:
    __version__ = "0.0.0"  # Not installed

from .engine import HistoryRecord, SummarizationEngine
from .profiles import Profile, ProfileStore

__all__ = ["HistoryRecord", "Profile", "ProfileStore", "SummarizationEngine", "__version__"]
