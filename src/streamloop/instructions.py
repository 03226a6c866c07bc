"""System-prompt text that teaches a model the ``<artifact>`` grammar."""

from dataclasses import dataclass

from streamloop.message import Message, MessageRole

GENERIC_INSTRUCTIONS = """You have the ability to create artifacts when providing code, documents, or other deliverables to the user.

When creating artifacts, wrap them in tags like this:
<artifact type="code" title="filename.ext" language="typescript">
your content here
</artifact>

Use artifacts when you're delivering complete, self-contained code or documents that the user can save and use directly. For explanations or conversation, respond normally without artifacts."""

RULES = """IMPORTANT RULES:
1. ALWAYS close your artifact tags with </artifact>
2. Include proper title attribute with file extension for code
3. Use artifacts for complete, self-contained deliverables
4. Use normal text for explanations and conversation"""


@dataclass
class ArtifactDefinition:
    """An artifact type the model is allowed to produce.

    Args:
        type: Value of the ``type`` attribute, e.g. ``"code"``.
        language: Optional language or format hint; several are
            comma-separated.
        instruction: Extra guidance appended under this type.
    """

    type: str
    language: str | None = None
    instruction: str | None = None

    @classmethod
    def code(cls, *languages: str, instruction: str | None = None) -> "ArtifactDefinition":
        return cls("code", ", ".join(languages) or None, instruction)

    @classmethod
    def document(cls, *formats: str, instruction: str | None = None) -> "ArtifactDefinition":
        return cls("document", ", ".join(formats) or None, instruction)

    @classmethod
    def data(cls, *formats: str, instruction: str | None = None) -> "ArtifactDefinition":
        return cls("data", ", ".join(formats) or None, instruction)


def artifact_instructions(
    *definitions: ArtifactDefinition,
    custom_instructions: str | None = None,
) -> str:
    """Build the artifact section of a system prompt.

    With no definitions the generic code/document wording is used.
    Definitions sharing a type are grouped; the first one's
    ``instruction`` is used for the group.
    """
    if not definitions:
        text = GENERIC_INSTRUCTIONS
        if custom_instructions:
            text += f"\n\nAdditional guidance: {custom_instructions}"
        return text

    groups: dict[str, list[ArtifactDefinition]] = {}
    for d in definitions:
        groups.setdefault(d.type, []).append(d)

    lines = [
        "You have the ability to create artifacts when providing deliverables to the user.",
        "",
        "Available artifact types:",
    ]
    for type_, defs in groups.items():
        languages = list(dict.fromkeys(
            lang.strip()
            for d in defs if d.language
            for lang in d.language.split(",")
            if lang.strip()
        ))
        if languages:
            lines.append(f"- {type_} (languages: {', '.join(languages)})")
        else:
            lines.append(f"- {type_}")
    lines += [
        "",
        "CRITICAL: You MUST use the exact XML format below. Always include BOTH opening and closing tags.",
        "",
    ]
    for type_, defs in groups.items():
        lines.append(f"For {type_} content:")
        if any(d.language for d in defs):
            lines.append(f'<artifact type="{type_}" title="filename" language="<language>">')
        else:
            lines.append(f'<artifact type="{type_}" title="title">')
        lines += ["your content here", "</artifact>"]
        if defs[0].instruction:
            lines.append(defs[0].instruction)
        lines.append("")

    text = "\n".join(lines) + "\n" + RULES
    if custom_instructions:
        text += f"\n\nAdditional guidance: {custom_instructions}"
    return text


def enable_artifacts(
    messages: list[Message],
    *definitions: ArtifactDefinition,
    custom_instructions: str | None = None,
) -> list[Message]:
    """Add artifact instructions to the history's system message.

    Appends to the first system message if there is one, otherwise
    inserts a new system message at the front.  Mutates and returns
    *messages*.
    """
    instructions = artifact_instructions(
        *definitions, custom_instructions=custom_instructions,
    )
    for m in messages:
        if m.role is MessageRole.SYSTEM:
            m.content = f"{m.content or ''}\n\n{instructions}"
            return messages
    messages.insert(0, Message.system(instructions))
    return messages
