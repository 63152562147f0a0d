# ─────────────────────────────────────────────────────────────────────────────
# Prompt Templates — vision labeling and AI image titles
# ─────────────────────────────────────────────────────────────────────────────


_TITLE_TEMPLATE = (
    "Create a concise and engaging title, consisting of one or two words, "
    "for the given description: {description}"
)

_LABEL_TEMPLATE = (
    "List up to {max_labels} short descriptive labels for this image, "
    "most relevant first. Use one to three words per label. "
    "Respond only with a JSON array of strings."
)


def get_title_prompt(description: str) -> str:
    """Prompt asking the text model for a one or two word title.

    Args:
        description: The user's image prompt, used verbatim.

    Returns:
        A complete user message for the chat completion call.
    """
    return _TITLE_TEMPLATE.format(description=description)


def get_label_prompt(max_labels: int) -> str:
    """Instruction sent alongside the image to the vision model."""
    return _LABEL_TEMPLATE.format(max_labels=max_labels)


def clean_title(raw: str | None) -> str:
    """Strip the quotes models like to wrap titles in."""
    return (raw or "").replace('"', "").strip()
