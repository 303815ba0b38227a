"""patchguard: safe application of model-proposed edits to a repository.

Pipeline for one model response:
- Operation extraction from fenced edit blocks (extractor.py)
- Security scoring and syntax checks (validator.py)
- Backed-up, atomic, verified file writes (applier.py)
- Argv-only staging, commit and push with retries (vcs.py)
"""

__version__ = "0.1.0"
