"""
Deterministic prompt templates for both batch phases.

Question n of a job is a pure function of (content type, language, labels, n),
so phase 2 and the final merge can re-derive it without storing questions.

Dependencies: batchgen.boundary.gateway.base
System role: Builds phase-1 and phase-2 batch requests and content row fields
"""

import json
import re
from dataclasses import dataclass

from batchgen.boundary.gateway.base import BatchRequest

FAULT_TOPICS: dict[str, tuple[str, ...]] = {
    "en": (
        "Check engine light on",
        "Engine misfire",
        "Rough idle",
        "Loss of power",
        "Engine knocking",
        "Engine overheating",
        "Oil consumption high",
        "Engine won't start",
        "Engine stalling",
        "Transmission slipping",
        "Hard shifting",
        "Transmission fluid leak",
        "Gear won't engage",
        "Transmission overheating",
        "Battery not charging",
        "Alternator failure",
        "Electrical short circuit",
        "Fuse keeps blowing",
        "Dashboard lights flickering",
        "Brake pedal soft",
        "Brake noise",
        "ABS light on",
        "Brake fluid leak",
        "Coolant leak",
        "Radiator failure",
        "Thermostat stuck",
        "Cooling fan not working",
        "Fuel pump failure",
        "Poor fuel economy",
        "Fuel injector clogged",
        "Fuel filter dirty",
        "Suspension noise",
        "Uneven tire wear",
        "Steering wheel vibration",
    ),
    "de": (
        "Motorkontrollleuchte leuchtet",
        "Motoraussetzer",
        "Unruhiger Leerlauf",
        "Leistungsverlust",
        "Klopfgeräusche",
        "Motorüberhitzung",
        "Hoher Ölverbrauch",
        "Motor startet nicht",
        "Motor geht aus",
        "Getriebe rutscht durch",
        "Hartes Schalten",
        "Getriebeölleck",
        "Gang springt nicht ein",
        "Getriebeüberhitzung",
        "Batterie lädt nicht",
        "Lichtmaschine defekt",
        "Kurzschluss",
        "Sicherung brennt durch",
        "Armaturenbrett flackert",
        "Bremspedal weich",
        "Bremsgeräusche",
        "ABS-Leuchte leuchtet",
        "Bremsflüssigkeitsleck",
        "Kühlmittelleck",
        "Kühler defekt",
        "Thermostat klemmt",
        "Kühlerlüfter funktioniert nicht",
        "Kraftstoffpumpe defekt",
        "Hoher Kraftstoffverbrauch",
        "Einspritzdüse verstopft",
        "Kraftstofffilter verschmutzt",
        "Federungsgeräusche",
        "Ungleichmäßiger Reifenverschleiß",
        "Lenkradvibration",
    ),
}

MANUAL_TOPICS: dict[str, tuple[str, ...]] = {
    "en": (
        "How to change engine oil",
        "How to replace brake pads",
        "How to replace air filter",
        "How to replace spark plugs",
        "How to replace battery",
        "How to replace timing belt",
        "How to flush coolant system",
        "How to replace fuel filter",
        "How to replace cabin air filter",
        "How to replace transmission fluid",
        "How to replace serpentine belt",
        "How to replace water pump",
        "How to replace alternator",
        "How to replace starter motor",
        "How to replace oxygen sensor",
    ),
    "de": (
        "Motoröl wechseln",
        "Bremsbeläge wechseln",
        "Luftfilter wechseln",
        "Zündkerzen wechseln",
        "Batterie wechseln",
        "Zahnriemen wechseln",
        "Kühlsystem spülen",
        "Kraftstofffilter wechseln",
        "Innenraumfilter wechseln",
        "Getriebeöl wechseln",
        "Keilriemen wechseln",
        "Wasserpumpe wechseln",
        "Lichtmaschine wechseln",
        "Anlasser wechseln",
        "Lambdasonde wechseln",
    ),
}

FAULT_SYSTEM_PROMPT = (
    "You are an expert automotive technician. Provide detailed, step-by-step "
    "solutions for car problems. Include symptoms, diagnostic steps, tools "
    "required, and repair instructions. Be specific and technical. Format your "
    "response with clear headings and structured steps."
)

MANUAL_SYSTEM_PROMPT = (
    "You are an expert automotive technician. Provide detailed, step-by-step "
    "maintenance and repair procedures. Include tools required, parts needed, "
    "time estimates, and safety warnings. Be specific and technical. Format "
    "your response with clear headings and structured steps."
)

METADATA_SYSTEM_PROMPT = """You are an expert at extracting structured metadata from automotive content. Return ONLY valid JSON with the following structure:
{
  "severity": "low" | "medium" | "high" | "critical",
  "difficulty_level": "easy" | "medium" | "hard" | "expert",
  "error_code": string | null,
  "affected_component": string | null,
  "symptoms": string[],
  "diagnostic_steps": string[],
  "tools_required": string[],
  "estimated_repair_time": string | null,
  "meta_title": string,
  "meta_description": string,
  "seo_score": number | null,
  "content_score": number | null,
  "manual_type": "repair" | "maintenance" | "diagnostic" | null,
  "estimated_time": string | null,
  "parts_required": string[]
}"""

LANGUAGE_NAMES = {"en": "English", "de": "German"}

TITLE_MAX_LENGTH = 100
DESCRIPTION_MAX_LENGTH = 200


@dataclass(frozen=True)
class TargetLabels:
    """Display names used inside prompts."""

    brand: str
    model: str
    generation: str
    generation_code: str | None = None

    @property
    def generation_label(self) -> str:
        return self.generation_code or self.generation


def correlation_key(index: int) -> str:
    """Correlation key of row index (0-based), shared by both phases."""
    return f"item-{index + 1}"


def key_index(key: str) -> int:
    """Inverse of correlation_key."""
    return int(key.rsplit("-", 1)[1]) - 1


def question_for(content_type: str, language: str, labels: TargetLabels, index: int) -> str:
    """
    Build question index of a job.

    Topics cycle; phrasing variations cycle independently, so consecutive
    rows differ even when a topic repeats.
    """
    if content_type == "fault":
        topics = FAULT_TOPICS.get(language, FAULT_TOPICS["en"])
        topic = topics[index % len(topics)]
        variations = (
            f"{topic} {labels.brand} {labels.model}",
            f"{topic} {labels.model} {labels.generation_label}",
            f"{topic} {labels.brand} {labels.model} {labels.generation_label}",
            f"How to fix {topic.lower()} {labels.brand} {labels.model}",
            f"{topic} solution {labels.model}",
            f"Diagnose {topic.lower()} {labels.brand} {labels.model}",
        )
    else:
        topics = MANUAL_TOPICS.get(language, MANUAL_TOPICS["en"])
        topic = topics[index % len(topics)]
        variations = (
            f"{topic} {labels.brand} {labels.model}",
            f"{topic} {labels.model} {labels.generation_label}",
            f"{topic} {labels.brand} {labels.model} {labels.generation_label}",
            f"{topic} guide {labels.model}",
            f"{topic} tutorial {labels.brand} {labels.model}",
        )
    return variations[index % len(variations)]


def build_content_requests(
    content_type: str,
    language: str,
    labels: TargetLabels,
    count: int,
    model: str,
) -> list[BatchRequest]:
    """Phase-1 requests: one chat completion per item."""
    system_prompt = FAULT_SYSTEM_PROMPT if content_type == "fault" else MANUAL_SYSTEM_PROMPT
    if language != "en":
        system_prompt += f" Answer in {LANGUAGE_NAMES.get(language, language)}."

    target = f"{labels.brand} {labels.model} {labels.generation}"
    if labels.generation_code:
        target += f" ({labels.generation_code})"

    requests = []
    for index in range(count):
        question = question_for(content_type, language, labels, index)
        requests.append(
            BatchRequest(
                custom_id=correlation_key(index),
                body={
                    "model": model,
                    "messages": [
                        {"role": "system", "content": system_prompt},
                        {"role": "user", "content": f"{question} - {target}"},
                    ],
                    "temperature": 0.7,
                    "max_tokens": 2000,
                },
            )
        )
    return requests


def build_metadata_request(
    key: str,
    content_type: str,
    question: str,
    answer: str,
    labels: TargetLabels,
    model: str,
) -> BatchRequest:
    """Phase-2 request for one successful phase-1 row, under the same key."""
    kind = "fault description" if content_type == "fault" else "manual"
    user_prompt = (
        f"Extract metadata from this {kind}:\n\n"
        f"Question: {question}\n\nAnswer: {answer}\n\n"
        f"Brand: {labels.brand}\nModel: {labels.model}\nGeneration: {labels.generation}\n\n"
        "Return ONLY the JSON object, no other text."
    )
    return BatchRequest(
        custom_id=key,
        body={
            "model": model,
            "messages": [
                {"role": "system", "content": METADATA_SYSTEM_PROMPT},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": 0.3,
            "max_tokens": 1000,
            "response_format": {"type": "json_object"},
        },
    )


def slugify(text: str, max_length: int = 80) -> str:
    """Lowercase ASCII slug."""
    slug = text.lower().strip()
    slug = re.sub(r"[^a-z0-9\s-]", "", slug)
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"-+", "-", slug).strip("-")
    return slug[:max_length].rstrip("-")


def build_slug(question: str, job_token: str, index: int) -> str:
    """Slug unique per job: question slug, job token, and 1-based row number."""
    base = slugify(question) or "item"
    return f"{base}-{job_token}-{index + 1}"


def build_title(question: str) -> str:
    question = question.strip()
    if len(question) > TITLE_MAX_LENGTH:
        return question[:TITLE_MAX_LENGTH].strip() + "..."
    return question


def build_description(metadata: dict, answer: str, question: str) -> str:
    """Meta description, else the first paragraph of the answer, else the question."""
    description = metadata.get("meta_description")
    if isinstance(description, str) and description.strip():
        return description.strip()
    first_paragraph = answer.split("\n\n")[0].strip()[:DESCRIPTION_MAX_LENGTH]
    return first_paragraph or question


def parse_metadata(content: str) -> dict:
    """
    Parse a phase-2 JSON object.

    Raises:
        ValueError: Content is not a JSON object
    """
    parsed = json.loads(content)
    if not isinstance(parsed, dict):
        raise ValueError("metadata is not a JSON object")
    return parsed
