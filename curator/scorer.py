"""Relevance scoring of papers with a local language model."""

import logging
import re
from dataclasses import dataclass
from typing import Optional, Protocol

import requests

from .api_client import OllamaClient
from .models import Paper

logger = logging.getLogger(__name__)

DEFAULT_PROFILE = """- PhD student at Harvard studying AI alignment
- Research focus: inference-time reward hacking, RLHF alternatives, alignment evaluation
- Recent work: "Inference-Time Reward Hacking in Large Language Models", "AI Alignment at Your Discretion\""""

FALLBACK_REASONING = "Analysis failed - Make sure Ollama is running with 'ollama serve'"

_SCORE_RE = re.compile(r"Score:\s*(\d+)")
_PREFIX_RE = re.compile(r"Score:\s*\d+/10\s*-\s*")


class TextOracle(Protocol):
    def generate(self, prompt: str, temperature: float, top_p: float, num_predict: int) -> str:
        ...


@dataclass
class ScorerConfig:
    """Configuration for the relevance scorer."""

    base_url: str = "http://localhost:11434"
    model: str = "llama3.2:1b"
    temperature: float = 0.1
    top_p: float = 0.9
    num_predict: int = 200
    timeout: int = 120
    delay: float = 1.0
    profile: str = DEFAULT_PROFILE

    @classmethod
    def from_dict(cls, config: dict) -> "ScorerConfig":
        """Create ScorerConfig from the ``scorer`` config section."""
        return cls(
            base_url=config.get("base_url", "http://localhost:11434"),
            model=config.get("model", "llama3.2:1b"),
            temperature=config.get("temperature", 0.1),
            top_p=config.get("top_p", 0.9),
            num_predict=config.get("num_predict", 200),
            timeout=config.get("timeout", 120),
            delay=config.get("delay", 1.0),
            profile=(config.get("profile") or DEFAULT_PROFILE).strip(),
        )


@dataclass
class ScoreResult:
    score: int
    reasoning: str
    full_response: str


def parse_score_response(text: str) -> ScoreResult:
    """
    Extract score and reasoning from free-form model output.

    The expected shape is ``Score: X/10 - explanation``. Without a ``Score:``
    marker the score is 0 and the raw text is kept as reasoning.
    """
    match = _SCORE_RE.search(text)
    score = min(int(match.group(1)), 10) if match else 0
    reasoning = _PREFIX_RE.sub("", text, count=1).strip()
    return ScoreResult(score=score, reasoning=reasoning, full_response=text)


class RelevanceScorer:
    """Rates how relevant a paper is to the configured researcher profile."""

    def __init__(self, config: Optional[ScorerConfig] = None, oracle: Optional[TextOracle] = None):
        self.config = config or ScorerConfig()
        self.oracle = oracle or OllamaClient(
            base_url=self.config.base_url,
            model=self.config.model,
            timeout=self.config.timeout,
        )

    def build_prompt(self, paper: Paper) -> str:
        return f"""You are helping an AI alignment researcher evaluate papers.

RESEARCHER PROFILE:
{self.config.profile}

PAPER TO EVALUATE:
Title: {paper.title}
Authors: {paper.authors_text}
Abstract: {paper.abstract or ""}

Rate this paper's relevance (1-10) to the researcher's work and explain why in 2-3 sentences.

Focus on:
- Direct relevance to inference-time alignment methods
- Novel evaluation approaches for alignment
- Understanding of reward hacking or RLHF failure modes
- Methodological insights applicable to alignment research

Response format: "Score: X/10 - [brief explanation]\""""

    def score(self, paper: Paper) -> ScoreResult:
        """
        Score a single paper.

        Never raises for oracle failures: an unreachable or misbehaving model
        yields score 0 with a fixed explanation.
        """
        try:
            text = self.oracle.generate(
                self.build_prompt(paper),
                temperature=self.config.temperature,
                top_p=self.config.top_p,
                num_predict=self.config.num_predict,
            )
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Llama analysis failed: {e}")
            return ScoreResult(score=0, reasoning=FALLBACK_REASONING, full_response="Error")

        if text is not None and not isinstance(text, str):
            logger.error(f"Llama analysis returned {type(text).__name__}, expected text")
            return ScoreResult(score=0, reasoning=FALLBACK_REASONING, full_response="Error")

        return parse_score_response(text or "")
