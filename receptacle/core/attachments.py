"""
Attachment filtering for sub-rule export directives.

AttachmentMatcher decides whether a single attachment passes the filters of an
AttachmentAction. Two independent filters apply and both must pass:

- MIME type: an empty ``mime_types`` accepts everything, otherwise the
  attachment's type must be listed (case-insensitive).
- Filename: a missing or empty ``filename_pattern`` accepts everything,
  otherwise the filename must contain it (case-insensitive).

Writing files is the attachment exporter's job; this module has no I/O.
"""

from typing import Optional

from receptacle.core.types import AttachmentAction


class AttachmentMatcher:
    """Pure predicate over (filename, MIME type, AttachmentAction)."""

    def matches(self, filename: str, mime_type: str, action: AttachmentAction) -> bool:
        """Return True if the attachment passes both the MIME type and filename filters."""
        return (
            self.matches_mime_type(mime_type, action)
            and self.matches_filename(filename, action)
        )

    def matches_mime_type(self, mime_type: str, action: AttachmentAction) -> bool:
        if not action.mime_types:
            return True
        wanted = mime_type.lower()
        return any(accepted.lower() == wanted for accepted in action.mime_types)

    def matches_filename(self, filename: str, action: AttachmentAction) -> bool:
        pattern = action.filename_pattern
        if not pattern:
            return True
        return pattern.lower() in filename.lower()

    def skip_reason(
        self,
        filename: str,
        mime_type: str,
        action: AttachmentAction,
    ) -> Optional[str]:
        """
        Explain why an attachment would be skipped.

        Args:
            filename: Attachment filename
            mime_type: Attachment MIME type
            action: Export directive to test against

        Returns:
            Human-readable reason, or None if the attachment matches
        """
        if not self.matches_mime_type(mime_type, action):
            return f"MIME type '{mime_type}' not in filter {list(action.mime_types)}"
        if not self.matches_filename(filename, action):
            return (
                f"Filename '{filename}' does not contain pattern "
                f"'{action.filename_pattern or ''}'"
            )
        return None
