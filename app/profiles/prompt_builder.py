from __future__ import annotations

from app.models import AIPreference
from app.profiles.personas import Persona


def build_system_prompt(
    base: str,
    persona: Persona,
    preference: AIPreference | None,
    facts: list[str],
    current_date: str,
) -> str:
    """Build the chat system prompt from the persona, stored facts and the date."""
    lines = [persona.system_prompt, base]

    if preference:
        lines.append(
            f"\nUser profile:\n"
            f"- AI type: {persona.name}\n"
            f"- Focus areas: {', '.join(persona.focus_areas)}\n"
            f"- Communication style: {preference.communication_style or 'formal'}\n"
            f"- Preferred language: {preference.preferred_language or 'id'}"
        )

    if facts:
        lines.append("\nWhat you know about the user:")
        lines.extend(f"- {fact}" for fact in facts)

    lines.append(f"\nCurrent Date: {current_date}")
    return "\n".join(lines)


def build_training_prompt(persona: Persona, transcript_length: int) -> str:
    """System prompt attached to every example of a personalization dataset."""
    return (
        f"{persona.system_prompt}\n\n"
        "Anda adalah asisten AI personal yang memahami pola percakapan pengguna.\n"
        f"Total percakapan: {transcript_length}\n"
        "Berikan saran yang personal berdasarkan riwayat percakapan pengguna. "
        "Gunakan bahasa yang familiar dan sesuai dengan gaya komunikasi pengguna."
    )
