"""Evergreen: resumable pipeline turning book text into interlinked evergreen notes.

Modules
-------
gateway    : model requests over OpenAI-compatible or Anthropic endpoints, with rate-limit backoff
normalizer : raw reply -> validated JSON, or a typed failure
pipeline   : the three phases and the orchestrator that sequences them
session    : the persisted session model
store      : session persistence
links      : [[Title]] cross-reference resolution
export     : Markdown / zip export
service    : orchestrator bound to a store
"""
__version__ = "0.1.0"
