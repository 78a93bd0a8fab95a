"""Conversation responder for paper chat.

Replies come from an OpenAI-compatible chat-completion API when one is
configured.  Whenever that call cannot be made or fails, the responder
falls back to :func:`fallback_response`, a deterministic rule-based
generator that only looks at the question and the paper metadata:

  1) ``classify_message`` lower-cases the question and walks
     ``INTENT_RULES`` in order; the first rule with a matching keyword
     wins, otherwise the intent is ``general``.
  2) The intent selects a markdown template filled from the paper's
     title, authors and abstract.

The fallback functions are pure so they can be tested as tables.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import httpx

from paperchat.config import Settings
from paperchat.exceptions import UpstreamError
from paperchat.models.chat import ChatMessage
from paperchat.models.paper import Paper
from paperchat.utils.text import sentences, truncate

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "mistralai/Mixtral-8x7B-Instruct-v0.1"
DEFAULT_BASE_URL = "https://api.together.xyz/v1"
TIMEOUT = 60.0

# Fixed priority order: first match wins.
INTENT_RULES: list[tuple[str, tuple[str, ...]]] = [
    ("summary", ("summary", "summarize", "overview")),
    ("methodology", ("method", "approach", "technique")),
    ("contribution", ("contribution", "novel", "innovation")),
    ("authors", ("author", "researcher", "who wrote")),
    ("findings", ("result", "finding", "conclusion")),
    ("comparison", ("compare", "difference", "vs")),
    ("technical", ("algorithm", "equation", "formula")),
]
GENERAL = "general"

METHOD_WORDS = (
    "algorithm", "method", "approach", "technique", "framework",
    "model", "system", "analysis", "optimization", "learning",
)
TECHNICAL_WORDS = (
    "algorithm", "neural", "network", "optimization", "machine learning",
    "deep learning", "artificial intelligence",
)
FOCUS_AREAS = [
    ("machine learning", "machine learning techniques and applications"),
    ("neural network", "neural network architectures and optimization"),
    ("natural language", "natural language processing and understanding"),
    ("computer vision", "computer vision and image analysis"),
    ("optimization", "optimization methods and algorithms"),
]


@dataclass
class ChatReply:
    """A generated reply and where it came from."""

    content: str
    intent: str
    source: str  # "llm" or "fallback"


# ---------------------------------------------------------------------------
# Intent classification
# ---------------------------------------------------------------------------

def classify_message(message: str) -> str:
    """Return the intent category of a user question."""
    lower = message.lower()
    for intent, keywords in INTENT_RULES:
        if any(keyword in lower for keyword in keywords):
            return intent
    return GENERAL


# ---------------------------------------------------------------------------
# Rule-based fallback
# ---------------------------------------------------------------------------

def fallback_response(
    message: str,
    paper: Paper,
    history: Optional[Sequence[ChatMessage]] = None,
) -> str:
    """Build a deterministic reply from the paper metadata alone."""
    intent = classify_message(message)
    builder = _BUILDERS.get(intent, _general)
    return builder(message, paper, list(history or []))


def _summary(message: str, paper: Paper, history: list[ChatMessage]) -> str:
    authors = ", ".join(paper.authors[:3]) + (" et al." if len(paper.authors) > 3 else "")
    points = [truncate(s, 80) for s in sentences(paper.summary, 20)[:4]]
    lines = [f"## Paper Summary: {paper.title}", "", f"**Authors:** {authors or 'Unknown'}", ""]
    if paper.published:
        lines += [f"**Published:** {paper.published}", ""]
    if points:
        lines += ["**Key Points:**", *[f"- {p}" for p in points], ""]
    if paper.categories:
        lines += [f"**Research Area:** {paper.categories[0]}", ""]
    lines.append(
        f"This paper focuses on {_focus_area(paper.summary)}. "
        "Would you like me to dive deeper into any specific aspect?"
    )
    return "\n".join(lines)


def _methodology(message: str, paper: Paper, history: list[ChatMessage]) -> str:
    lower = paper.summary.lower()
    keywords = [w for w in METHOD_WORDS if w in lower]
    lines = [
        "## Methodology Analysis",
        "",
        f'Based on the abstract of "{paper.title}", the paper employs these approaches:',
        "",
    ]
    for keyword in keywords:
        lines += [f"**{keyword}:** mentioned in the context of {_context_for(keyword, paper.summary)}", ""]
    lines += [
        f"The research appears to follow a {_research_type(paper.summary)} approach. "
        "The methodology section of the full paper has the implementation specifics.",
        "",
        "Would you like me to help identify specific technical terms or approaches mentioned?",
    ]
    return "\n".join(lines)


def _contribution(message: str, paper: Paper, history: list[ChatMessage]) -> str:
    lines = [
        "## Main Contributions",
        "",
        f'Based on the paper "{paper.title}", the key contributions appear to be:',
        "",
    ]
    for i, (kind, description) in enumerate(_contributions(paper.summary), 1):
        lines += [f"{i}. **{kind}:** {description}", ""]
    area = paper.categories[0] if paper.categories else "its field"
    lines.append(
        f"These contributions advance {area} by {_advancement(paper.summary)}. "
        "Would you like me to elaborate on any of these contributions?"
    )
    return "\n".join(lines)


def _authors(message: str, paper: Paper, history: list[ChatMessage]) -> str:
    authors = paper.authors or ["Unknown"]
    count = len(authors)
    lines = [
        "## Author Information",
        "",
        f'"{paper.title}" was written by {count} author{"s" if count > 1 else ""}.',
        "",
    ]
    for i, author in enumerate(authors):
        if i == 0:
            lines.append(f"**Lead Author:** {author}")
        elif i == count - 1 and count > 2:
            lines.append(f"**Senior Author:** {author}")
        else:
            lines.append(f"**Co-author:** {author}")
    lines += ["", _collaboration(authors), "", "Would you like me to help you understand their roles in this research?"]
    return "\n".join(lines)


def _findings(message: str, paper: Paper, history: list[ChatMessage]) -> str:
    findings = []
    for sentence in sentences(paper.summary, 30):
        lower = sentence.lower()
        if any(w in lower for w in ("result", "show", "demonstrate")):
            findings.append(("Experimental Results", truncate(sentence, 120)))
        elif "achieve" in lower or "obtain" in lower:
            findings.append(("Performance Achievement", truncate(sentence, 120)))
    lines = ["## Key Findings & Results", "", f'From the abstract of "{paper.title}":', ""]
    if findings:
        for category, description in findings[:3]:
            lines += [f"**{category}:** {description}", ""]
    else:
        lines += ["The abstract does not state explicit results.", ""]
    lines.append(
        "These findings come from the abstract only; the Results and Discussion "
        "sections of the full paper have the complete analysis. "
        "What aspect of the findings interests you most?"
    )
    return "\n".join(lines)


def _comparison(message: str, paper: Paper, history: list[ChatMessage]) -> str:
    return "\n".join([
        "## Comparison Analysis",
        "",
        f'You\'re asking about comparisons related to "{paper.title}".',
        "",
        f"**This paper's approach:** the abstract points to {_focus_area(paper.summary)}.",
        "",
        "For detailed comparisons, look at the Related Work section and the "
        "experimental comparison tables of the full paper.",
        "",
        "What specific aspect would you like me to compare?",
    ])


def _technical(message: str, paper: Paper, history: list[ChatMessage]) -> str:
    lower = paper.summary.lower()
    terms = [w for w in TECHNICAL_WORDS if w in lower]
    lines = ["## Technical Analysis", "", f'"{paper.title}" discusses these technical concepts:', ""]
    for term in terms:
        lines += [f"**{term}:** referenced in the research context", ""]
    lines += [
        f"**Technical Focus:** {_focus_area(paper.summary)}",
        "",
        "What specific technical aspect interests you?",
    ]
    return "\n".join(lines)


def _general(message: str, paper: Paper, history: list[ChatMessage]) -> str:
    lines = [f'Based on your question about "{paper.title}":', "", _relevant_info(message, paper.summary), ""]
    context = _conversation_context(history)
    if context:
        lines += [f"**Building on our previous discussion:** {context}", ""]
    if paper.summary:
        lines += [f'The paper\'s abstract suggests: "{truncate(paper.summary, 200)}"', ""]
    lines.append("What specific aspect would you like to dive deeper into?")
    return "\n".join(lines)


_BUILDERS = {
    "summary": _summary,
    "methodology": _methodology,
    "contribution": _contribution,
    "authors": _authors,
    "findings": _findings,
    "comparison": _comparison,
    "technical": _technical,
    GENERAL: _general,
}


def _focus_area(abstract: str) -> str:
    lower = abstract.lower()
    for keyword, area in FOCUS_AREAS:
        if keyword in lower:
            return area
    return "advancing computational methods and theoretical understanding"


def _context_for(keyword: str, abstract: str) -> str:
    for sentence in abstract.split("."):
        if keyword in sentence.lower():
            return truncate(sentence.strip(), 100)
    return "the research methodology"


def _research_type(abstract: str) -> str:
    lower = abstract.lower()
    for word, kind in (
        ("experiment", "experimental"),
        ("survey", "survey-based"),
        ("theoretical", "theoretical"),
        ("empirical", "empirical"),
    ):
        if word in lower:
            return kind
    return "analytical"


def _contributions(abstract: str) -> list[tuple[str, str]]:
    lower = abstract.lower()
    found = []
    if "novel" in lower or "new" in lower:
        found.append(("Novel Approach", "Introduces a new method or technique to the field"))
    if "improve" in lower or "better" in lower:
        found.append(("Performance Improvement", "Enhances existing methods or achieves better results"))
    if "analysis" in lower or "study" in lower:
        found.append(("Analytical Contribution", "Provides new insights through analysis or comprehensive study"))
    return found or [("Research Contribution", "Advances the field through novel research findings")]


def _advancement(abstract: str) -> str:
    lower = abstract.lower()
    if "efficient" in lower:
        return "improving computational efficiency and scalability"
    if "accurate" in lower:
        return "enhancing accuracy and reliability of existing methods"
    if "novel" in lower:
        return "introducing innovative approaches and methodologies"
    return "contributing new knowledge and methodological insights"


def _collaboration(authors: list[str]) -> str:
    if len(authors) == 1:
        return f"This is a single-author work by {authors[0]}."
    if len(authors) <= 3:
        return f"This is a collaborative effort between {len(authors)} researchers."
    return (
        f"This is a large collaborative work with {len(authors)} contributors, "
        "likely involving multiple institutions or research groups."
    )


def _conversation_context(history: list[ChatMessage]) -> str:
    if len(history) < 2:
        return ""
    topics = []
    for msg in history[-4:]:
        if not msg.is_user:
            continue
        lower = msg.content.lower()
        for word, topic in (
            ("method", "methodology"),
            ("result", "results"),
            ("author", "authors"),
            ("contribution", "contributions"),
        ):
            if word in lower:
                topics.append(topic)
                break
    return f"We've been discussing {', '.join(topics)}" if topics else ""


def _relevant_info(question: str, abstract: str) -> str:
    question_words = [w for w in question.lower().split() if len(w) > 3]
    for sentence in sentences(abstract, 20):
        sentence_words = sentence.lower().split()
        if any(q in s for q in question_words for s in sentence_words):
            return f'From the abstract, here\'s what\'s relevant to your question:\n\n"{sentence}..."'
    return "While the abstract doesn't directly address your question, it provides context about the research focus."


# ---------------------------------------------------------------------------
# Chat-completion client
# ---------------------------------------------------------------------------

def build_prompt(
    message: str,
    paper: Paper,
    history: Optional[Sequence[ChatMessage]] = None,
) -> str:
    """Instruction prompt grounding the model in the paper's abstract."""
    lines = [
        "[INST] Based on the following paper, answer the user's question.",
        "",
        f"Title: {paper.title}",
        f"Abstract: {paper.summary}",
    ]
    recent = [m for m in (history or []) if not m.transient][-6:]
    if recent:
        lines += ["", "Conversation so far:"]
        lines += [f"{m.role}: {m.content}" for m in recent]
    lines += ["", f"Question: {message} [/INST]"]
    return "\n".join(lines)


class CompletionClient:
    """Async client for an OpenAI-compatible ``/chat/completions`` endpoint."""

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = TIMEOUT,
        max_tokens: int = 800,
        temperature: float = 0.7,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_tokens = max_tokens
        self.temperature = temperature
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> Optional["CompletionClient"]:
        """Build a client for the active LLM profile, or None if there is none."""
        profile = settings.active_llm
        if profile is None:
            return None
        model = settings.active_llm_model
        return cls(
            api_key=profile.api_key,
            model=profile.model,
            base_url=model.base_url if model else DEFAULT_BASE_URL,
            max_tokens=model.max_output if model and model.max_output else 800,
        )

    async def complete(self, prompt: str) -> str:
        """Send one user prompt and return the model's text.

        Raises:
            UpstreamError: Missing key, HTTP failure or malformed payload
        """
        if not self.api_key:
            raise UpstreamError("API key is not configured.")
        payload = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.post(
                    f"{self.base_url}/chat/completions", json=payload, headers=headers
                )
        except httpx.HTTPError as e:
            raise UpstreamError("AI API request failed", details=str(e)) from e

        if response.status_code != 200:
            raise UpstreamError("AI API request failed", details=response.text[:500])
        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise UpstreamError("Invalid response from AI model.") from e
        if not content or not str(content).strip():
            raise UpstreamError("Invalid response from AI model.")
        return str(content).strip()


class ConversationResponder:
    """Answers questions about a paper; never raises for upstream failures."""

    def __init__(self, completion: Optional[CompletionClient] = None):
        self.completion = completion

    async def respond(
        self,
        message: str,
        paper: Paper,
        history: Optional[Sequence[ChatMessage]] = None,
    ) -> ChatReply:
        intent = classify_message(message)
        if self.completion is not None:
            try:
                content = await self.completion.complete(build_prompt(message, paper, history))
                return ChatReply(content=content, intent=intent, source="llm")
            except UpstreamError as e:
                logger.warning("Completion failed for %s, using fallback: %s", paper.link, e)
        return ChatReply(
            content=fallback_response(message, paper, history),
            intent=intent,
            source="fallback",
        )
