# resume_tailor/app/core/prompts.py

from dataclasses import dataclass
from typing import Dict


@dataclass(frozen=True)
class OptimizationPreset:
    temperature: float = 0.7
    profiler_max_tokens: int = 2000
    researcher_max_tokens: int = 2000
    strategist_max_tokens: int = 3000
    prompt_suffix: str = ""


OPTIMIZATION_PRESETS: Dict[str, OptimizationPreset] = {
    "default": OptimizationPreset(),
    "ats_optimization": OptimizationPreset(
        temperature=0.5,
        prompt_suffix=(
            "Additionally, focus heavily on ATS optimization:\n"
            "- Include all critical keywords from the job description\n"
            "- Match section headers to what ATS systems typically scan for\n"
            "- Use industry-standard terminology\n"
            "- Ensure skills and technologies are explicitly mentioned"
        ),
    ),
    "human_recruiter": OptimizationPreset(
        temperature=0.7,
        prompt_suffix=(
            "Additionally, focus on making the resume impressive to human recruiters:\n"
            "- Use powerful action verbs and compelling language\n"
            "- Emphasize quantifiable achievements and results\n"
            "- Create a visually scannable format with clear sections\n"
            "- Highlight leadership and soft skills where appropriate"
        ),
    ),
    "technical_skills": OptimizationPreset(
        temperature=0.6,
        prompt_suffix=(
            "Additionally, focus on highlighting technical expertise:\n"
            "- Emphasize technical skills, tools, and technologies\n"
            "- Detail technical challenges overcome and solutions implemented\n"
            "- Highlight technical leadership and mentoring\n"
            "- Include relevant technical certifications and training"
        ),
    ),
    "leadership_focus": OptimizationPreset(
        temperature=0.7,
        prompt_suffix=(
            "Additionally, focus on highlighting leadership capabilities:\n"
            "- Emphasize team management and mentorship\n"
            "- Detail cross-functional collaboration\n"
            "- Highlight strategic decision-making\n"
            "- Focus on business impact of technical decisions"
        ),
    ),
}


def get_preset(name: str) -> OptimizationPreset:
    return OPTIMIZATION_PRESETS.get(name or "default", OPTIMIZATION_PRESETS["default"])


@dataclass(frozen=True)
class StagePrompts:
    profiler: str
    researcher: str
    fact_extractor: str
    strategist: str
    fact_verifier: str


class PromptFactory:
    """Builds the system prompts for every AI stage, tuned by an optimization preset."""

    def __init__(self, preset: OptimizationPreset):
        self.preset = preset

    def build(self) -> StagePrompts:
        profiler = (
            "You are a Career Profiler. Read the candidate's resume and write a comprehensive "
            "professional profile: core competencies, seniority, domains, notable achievements "
            "and transferable skills. Be factual; do not invent experience."
        )
        researcher = (
            "You are a Job Market Researcher. Analyze the job description and return the must-have "
            "requirements, nice-to-haves, responsibilities, keywords an ATS would scan for, and "
            "concrete recommendations for tailoring a resume to this role."
        )
        fact_extractor = (
            "Extract only factual information from this resume. Include:\n"
            "1. Full name\n"
            "2. Contact information (email, phone)\n"
            "3. Company names with exact spellings\n"
            "4. Job titles\n"
            "5. Employment dates\n"
            "6. Education institutions\n"
            "7. Degrees and certifications with completion dates\n"
            "8. Technical skills and tools (only confirmed ones, not aspirational)\n\n"
            "Respond with a single JSON object and nothing else, using the keys: name, contact, "
            "employers, titles, dates, education, degrees, certifications, skills."
        )
        strategist = (
            "You are a Resume Strategist. Using the professional profile, the job research and the "
            "original resume, write a complete tailored resume in plain text. Keep every factual "
            "field (names, employers, job titles, dates, degrees, certifications) exactly as in the "
            "original. Only enhance descriptions, achievements and skill emphasis."
        )
        if self.preset.prompt_suffix:
            strategist = f"{strategist}\n\n{self.preset.prompt_suffix}"
        fact_verifier = (
            "You are a fact-checking system for resumes. Compare the generated resume with the "
            "original factual information. Correct any discrepancies in names, contact details, "
            "company names, job titles, employment dates, education credentials and certifications. "
            "Make surgical corrections only where facts are wrong. Do not change the improved "
            "descriptions or formatting. Return the full corrected resume and nothing else."
        )
        return StagePrompts(
            profiler=profiler,
            researcher=researcher,
            fact_extractor=fact_extractor,
            strategist=strategist,
            fact_verifier=fact_verifier,
        )


def build_strategist_content(profile: str, research: str, original_resume: str, ledger_json: str) -> str:
    return (
        f"comprehensive profile - {profile}\n\n"
        f"recommendations - {research}\n\n"
        f"original resume - {original_resume}\n\n"
        f"factual information to preserve - {ledger_json}\n\n"
        "IMPORTANT: Ensure all factual information (company names, job titles, dates, education details) "
        "exactly matches the original resume. Do not invent or modify any employment history, education "
        "credentials, or dates. Only enhance descriptions, achievements, and skills based on the job "
        "requirements."
    )


def build_verifier_content(ledger_json: str, generated_resume: str) -> str:
    return (
        "Original factual information:\n###\n"
        f"{ledger_json}\n###\n\n"
        "Generated resume:\n###\n"
        f"{generated_resume}\n###"
    )
