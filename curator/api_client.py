"""API client for a locally hosted Ollama text-generation server."""

import logging
from typing import Optional

import requests

logger = logging.getLogger(__name__)


class OllamaClient:
    """Minimal client for Ollama's ``/api/generate`` endpoint."""

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        model: str = "llama3.2:1b",
        timeout: int = 120,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize API client.

        Args:
            base_url: Ollama server URL
            model: Model tag to generate with
            timeout: Request timeout in seconds
            session: Optional requests session
        """
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self.session = session or requests.Session()
        self.headers = {"Content-Type": "application/json"}

    def generate(
        self,
        prompt: str,
        temperature: float = 0.1,
        top_p: float = 0.9,
        num_predict: int = 200,
    ) -> str:
        """
        Run a single non-streaming generation.

        Args:
            prompt: Prompt text
            temperature: Sampling temperature
            top_p: Nucleus sampling cutoff
            num_predict: Maximum tokens to generate

        Returns:
            The generated text
        """
        url = f"{self.base_url}/api/generate"
        payload = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "options": {
                "temperature": temperature,
                "top_p": top_p,
                "num_predict": num_predict,
            },
        }

        logger.debug(f"Calling {url} with model {self.model}")

        try:
            response = self.session.post(url, headers=self.headers, json=payload, timeout=self.timeout)
            response.raise_for_status()
            result = response.json()
        except requests.exceptions.Timeout:
            logger.error(f"API request timeout after {self.timeout}s")
            raise
        except requests.exceptions.HTTPError as e:
            logger.error(f"API HTTP error: {e}")
            raise

        if not isinstance(result, dict) or not isinstance(result.get("response", ""), str):
            raise ValueError(f"Unexpected response body from {url}: {str(result)[:80]}")
        return result.get("response", "")
