"""
Helpers for presenting media attachments.

The store keeps only the media id, mime type and decryption key; file
extensions and display labels are derived here on demand.
"""

# (mime prefix, extension), first match wins
_EXTENSIONS = [
    ("audio/ogg", ".ogg"),
    ("audio/aac", ".aac"),
    ("audio/mp4", ".m4a"),
    ("audio/m4a", ".m4a"),
    ("audio/mpeg", ".mp3"),
    ("audio/amr", ".amr"),
    ("audio/", ".audio"),
    ("image/jpeg", ".jpg"),
    ("image/png", ".png"),
    ("image/gif", ".gif"),
    ("image/webp", ".webp"),
    ("image/", ".img"),
    ("video/mp4", ".mp4"),
    ("video/3gpp", ".3gp"),
    ("video/", ".video"),
]


def extension_for_mime(mime_type: str) -> str:
    for prefix, ext in _EXTENSIONS:
        if mime_type.startswith(prefix):
            return ext
    return ".bin"


def media_kind(mime_type: str) -> str:
    if mime_type.startswith("audio/"):
        return "voice message"
    if mime_type.startswith("image/"):
        return "image"
    if mime_type.startswith("video/"):
        return "video"
    return "attachment"


def format_message_body(body: str, media_id: str, mime_type: str, message_id: str) -> str:
    """
    Display text for a message, with a label for its attachment.

    The label carries the message id so a client can request the download.
    """
    if not media_id:
        return body
    label = f"[{media_kind(mime_type)}, message_id: {message_id}]"
    if body:
        return f"{body} {label}"
    return label
