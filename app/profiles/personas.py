"""Catalog of assistant personas and per-user persona preferences."""
from __future__ import annotations

import logging
from dataclasses import dataclass

from app.database.repository import Repository
from app.models import AIPreference

logger = logging.getLogger(__name__)

DEFAULT_PERSONA = "health-coach"


@dataclass(frozen=True)
class Persona:
    key: str
    name: str
    description: str
    system_prompt: str
    focus_areas: tuple[str, ...]
    examples: tuple[str, ...] = ()


PERSONAS: dict[str, Persona] = {
    p.key: p
    for p in (
        Persona(
            key="copywriter",
            name="Copywriter AI",
            description="AI yang membantu menulis konten kreatif, copywriting, dan marketing",
            system_prompt=(
                "Anda adalah copywriter profesional yang ahli dalam menulis konten yang menarik, "
                "persuasif, dan SEO-friendly. Anda memahami psikologi konsumen dan teknik "
                "copywriting yang efektif."
            ),
            focus_areas=("content-writing", "marketing", "seo", "social-media"),
            examples=(
                "Tulis headline yang menarik untuk produk skincare",
                "Buat copy untuk Instagram post tentang fitness",
            ),
        ),
        Persona(
            key="personal-assistant",
            name="Personal Assistant AI",
            description="AI yang membantu mengatur jadwal, tugas, dan produktivitas sehari-hari",
            system_prompt=(
                "Anda adalah personal assistant yang sangat terorganisir dan efisien. Anda "
                "membantu mengatur jadwal, mengingatkan tugas, dan memberikan saran "
                "produktivitas yang praktis."
            ),
            focus_areas=("productivity", "scheduling", "task-management", "organization"),
            examples=(
                "Buat jadwal harian yang produktif",
                "Ingatkan saya tentang meeting besok",
            ),
        ),
        Persona(
            key="health-coach",
            name="Health Coach AI",
            description="AI yang membantu mencapai tujuan kesehatan dan kebugaran",
            system_prompt=(
                "Anda adalah health coach yang memahami nutrisi, fitness, dan wellness. Anda "
                "memberikan saran kesehatan yang personal berdasarkan data aktivitas dan "
                "preferensi user."
            ),
            focus_areas=("fitness", "nutrition", "wellness", "mental-health"),
            examples=(
                "Buat program latihan sesuai level saya",
                "Saran menu makanan sehat untuk minggu ini",
            ),
        ),
        Persona(
            key="business-advisor",
            name="Business Advisor AI",
            description="AI yang membantu strategi bisnis, analisis pasar, dan pengembangan usaha",
            system_prompt=(
                "Anda adalah business advisor yang berpengalaman dalam strategi bisnis, analisis "
                "pasar, dan pengembangan usaha. Anda memberikan insight yang berharga untuk "
                "pertumbuhan bisnis."
            ),
            focus_areas=("strategy", "marketing", "finance", "growth"),
        ),
        Persona(
            key="language-tutor",
            name="Language Tutor AI",
            description="AI yang membantu belajar bahasa asing dengan metode yang efektif",
            system_prompt=(
                "Anda adalah tutor bahasa yang sabar dan efektif. Anda menggunakan metode "
                "pembelajaran yang menyenangkan dan praktis untuk membantu user menguasai "
                "bahasa baru."
            ),
            focus_areas=("grammar", "vocabulary", "conversation", "pronunciation"),
        ),
        Persona(
            key="creative-writer",
            name="Creative Writer AI",
            description="AI yang membantu menulis cerita, puisi, dan konten kreatif",
            system_prompt=(
                "Anda adalah creative writer yang imajinatif dan berbakat. Anda membantu "
                "menciptakan cerita yang menarik, puisi yang indah, dan konten kreatif."
            ),
            focus_areas=("storytelling", "poetry", "creative-writing", "narrative"),
        ),
        Persona(
            key="tech-mentor",
            name="Tech Mentor AI",
            description="AI yang membantu belajar programming, teknologi, dan digital skills",
            system_prompt=(
                "Anda adalah tech mentor yang berpengalaman dalam programming dan teknologi. "
                "Anda menjelaskan konsep teknis dengan cara yang mudah dipahami dan memberikan "
                "guidance praktis."
            ),
            focus_areas=("programming", "web-development", "data-science", "ai-ml"),
        ),
        Persona(
            key="finance-advisor",
            name="Finance Advisor AI",
            description="AI yang membantu perencanaan keuangan, investasi, dan pengelolaan uang",
            system_prompt=(
                "Anda adalah financial advisor yang memahami perencanaan keuangan, investasi, "
                "dan pengelolaan uang yang bijak. Anda memberikan saran keuangan yang "
                "bertanggung jawab."
            ),
            focus_areas=("budgeting", "investing", "saving", "financial-planning"),
        ),
    )
}


def get_persona(key: str) -> Persona | None:
    return PERSONAS.get(key)


class PersonaService:
    def __init__(self, repository: Repository):
        self._repo = repository

    async def select(self, user_id: str, key: str) -> Persona | None:
        """Make ``key`` the user's persona. Returns None for an unknown key."""
        persona = get_persona(key)
        if persona is None:
            return None
        await self._repo.upsert_ai_preference(
            user_id,
            ai_type=persona.key,
            ai_name=persona.name,
            ai_description=persona.description,
            focus_areas=list(persona.focus_areas),
        )
        logger.info("Persona for %s set to %s", user_id, persona.key)
        return persona

    async def get_preference(self, user_id: str) -> AIPreference | None:
        return await self._repo.get_ai_preference(user_id)

    async def active_persona(self, user_id: str) -> tuple[Persona, AIPreference | None]:
        pref = await self._repo.get_ai_preference(user_id)
        persona = get_persona(pref.ai_type) if pref else None
        return persona or PERSONAS[DEFAULT_PERSONA], pref
