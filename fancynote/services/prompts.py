"""Prompt and message construction for note structuring."""

from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

LANGUAGE_NAMES = {
    "en": "English",
    "pl": "Polish",
    "it": "Italian",
    "de": "German",
}

DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant that organizes and summarizes notes."
EMPTY_NOTE_MESSAGE = "Please analyze this note."
EMPTY_UPDATE_MESSAGE = "Please analyze this note update."

UPDATE_INSTRUCTIONS = """
# THIS IS THE NOTE THAT YOU HAVE ALREADY CREATED:
<current_note>
{current_note}
</current_note>

# THIS IS YOUR CURRENT AND ONLY TASK:
<current_task_instructions>
- Analyze the user's new content as an addition or modification to the current note content shown above, according to your general purpose defined in the initial system prompt.
- Based on the new content provided by the user and the current note, decide whether to append the new information to the end of the current note or integrate it seamlessly into the appropriate sections of the existing content, in either case maintaining the original style and structure.
- In the response, return ONLY the updated version of the note text.
- IMPORTANT: *DO NOT MISS ANYTHING FROM THE CURRENT NOTE*. Ensure all original content is preserved unless explicitly replaced or modified by the new user input.
</current_task_instructions>
"""


@dataclass
class IndexedContent:
    """A numbered piece of source content (transcription or file text)."""

    index: int
    content: str
    name: str | None = None


def language_name(code: str | None) -> str:
    return LANGUAGE_NAMES.get(code or "en", "English")


def build_system_prompt(user_prompt: str | None, language: str | None) -> str:
    """User prompt (or the default) followed by the language enforcement clause."""
    target = language_name(language)
    base = (user_prompt or "").strip() or DEFAULT_SYSTEM_PROMPT
    return (
        f"{base}\n\nCrucially, since the user has selected **{target}** as their preferred "
        f"language, you MUST always generate your responses in {target} *regardless* of the "
        f"language of provided instructions and *regardless* of the language of the user's "
        f"content, transcription or attachments."
    )


def build_update_system_prompt(
    user_prompt: str | None, language: str | None, current_note: str
) -> str:
    return (
        f"{build_system_prompt(user_prompt, language)}\n\n"
        f"{UPDATE_INSTRUCTIONS.format(current_note=current_note)}"
    )


def format_user_content(
    transcriptions: list[IndexedContent],
    text: str | None,
    files: list[IndexedContent],
    prefix: str = "",
) -> str:
    """
    Assemble the user message from all collected sources.

    Order is fixed: transcriptions, free text, extracted files. Empty
    segments are left out entirely. ``prefix`` marks content added by an
    update (``"new_"``).

    Args:
        transcriptions: Voice/audio transcriptions, numbered from 1
        text: The note's free text
        files: Extracted file contents, numbered from 1
        prefix: Tag prefix for update flows

    Returns:
        Formatted message, possibly empty
    """
    blocks = []
    for item in transcriptions:
        tag = f"{prefix}voice_recording_transcription_part_{item.index}"
        blocks.append(f"<{tag}>\n{item.content}\n</{tag}>")

    if text and text.strip():
        tag = "newly_added_text" if prefix else "added_text"
        blocks.append(f"<{tag}>\n{text}\n</{tag}>")

    for item in files:
        tag = f"{prefix}attachment_{item.index}"
        blocks.append(f"<{tag}>\n{item.content}\n</{tag}>")

    return "\n\n".join(blocks).strip()


def attachment_url(base_url: str, path: str, token: str) -> str:
    """Public URL of an attachment, authenticated by a query-string token."""
    return f"{base_url.rstrip('/')}/api/notes/attachment/{quote(path)}?token={quote(token)}"


def build_messages(
    system_prompt: str,
    user_content: str,
    image_urls: list[str],
    empty_message: str = EMPTY_NOTE_MESSAGE,
) -> list[dict[str, Any]]:
    """
    Build the chat message list.

    With images the user message is a content array (text block first, when
    there is text, then one image reference per image); otherwise plain text.
    """
    messages: list[dict[str, Any]] = [{"role": "system", "content": system_prompt}]
    if image_urls:
        parts: list[dict[str, Any]] = []
        if user_content:
            parts.append({"type": "text", "text": user_content})
        parts.extend({"type": "image_url", "image_url": {"url": url}} for url in image_urls)
        messages.append({"role": "user", "content": parts})
    else:
        messages.append({"role": "user", "content": user_content or empty_message})
    return messages
