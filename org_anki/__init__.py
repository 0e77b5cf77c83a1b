"""
org-anki: push flashcards written in Org files to Anki.

Where things live:
- `markers`: flashcard marker grammar and scanning
- `cloze`: emphasis to cloze conversion and occlusion masks
- `notes`: note payloads, field specs and tag policy
- `render`: Org markup to Anki HTML
- `writeback`: rewriting markers once Anki assigned a note id
- `push`: pushing one document
- `traversal`: resumable directory pushes
- `document`: the Org document model
- `config_types`: configuration
- `cli`: the `org-anki` command
"""

__all__ = [
    "cli",
    "cloze",
    "config_types",
    "document",
    "errors",
    "markers",
    "notes",
    "push",
    "render",
    "traversal",
    "writeback",
]
