# reporeader/generation.py

import logging
import time
from typing import Callable, Optional, Protocol

import requests
import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

from reporeader.config import Settings
from reporeader.errors import ProviderFatal, ProviderTransient, ProviderUnavailable

logger = logging.getLogger(__name__)

TRANSIENT_STATUS = {429, 503}


class Generator(Protocol):
    """Anything that turns a prompt into generated text."""

    name: str

    def generate(self, prompt: str) -> str:
        ...


class GeminiGenerator:
    name = "gemini"

    def __init__(self, api_key: str, model_name: str):
        genai.configure(api_key=api_key)
        self.model = genai.GenerativeModel(model_name)

    def generate(self, prompt: str) -> str:
        try:
            response = self.model.generate_content(prompt)
            return response.text.strip()
        except (google_exceptions.ResourceExhausted, google_exceptions.ServiceUnavailable) as e:
            raise ProviderTransient(f"Gemini overloaded: {e}") from e
        except google_exceptions.GoogleAPICallError as e:
            if getattr(e, "code", None) in TRANSIENT_STATUS:
                raise ProviderTransient(f"Gemini overloaded: {e}") from e
            raise ProviderFatal(f"Gemini API error: {e}") from e
        except ValueError as e:
            # response.text raises ValueError when the candidate was blocked
            raise ProviderFatal(f"Gemini returned no text: {e}") from e


class HuggingFaceGenerator:
    name = "huggingface"

    def __init__(self, api_key: str, model_name: str, base_url: str, max_new_tokens: int = 512,
                 temperature: float = 0.3, timeout: float = 60, session: Optional[requests.Session] = None):
        self.url = f"{base_url}/{model_name}"
        self.api_key = api_key
        self.parameters = {
            "max_new_tokens": max_new_tokens,
            "temperature": temperature,
            "return_full_text": False,
        }
        self.timeout = timeout
        self.session = session or requests.Session()

    def generate(self, prompt: str) -> str:
        try:
            response = self.session.post(
                self.url,
                headers={"Authorization": f"Bearer {self.api_key}"},
                json={"inputs": prompt, "parameters": self.parameters},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise ProviderFatal(f"Hugging Face request failed: {e}") from e

        if response.status_code in TRANSIENT_STATUS:
            raise ProviderTransient(f"Hugging Face overloaded ({response.status_code})")
        if not response.ok:
            raise ProviderFatal(f"Hugging Face error ({response.status_code}): {response.text[:200]}")

        data = response.json()
        if isinstance(data, list) and data:
            data = data[0]
        if not isinstance(data, dict) or "generated_text" not in data:
            raise ProviderFatal("Unexpected Hugging Face response format")
        return data["generated_text"].strip()


class GenerationClient:
    """
    Primary provider with exponential-backoff retry on overload, then the
    secondary provider exactly once. Raises ProviderUnavailable when both fail.
    """

    def __init__(self, primary: Generator, secondary: Optional[Generator] = None, max_retries: int = 3,
                 base_delay: float = 0.5, sleep: Callable[[float], None] = time.sleep):
        self.primary = primary
        self.secondary = secondary
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.sleep = sleep

    def _generate_with_retry(self, prompt: str) -> str:
        for attempt in range(1, self.max_retries + 1):
            try:
                return self.primary.generate(prompt)
            except ProviderTransient:
                if attempt == self.max_retries:
                    break
                delay = self.base_delay * (2 ** (attempt - 1))
                logger.warning("[GEN] %s overloaded (attempt %d/%d), retrying in %.2fs",
                               self.primary.name, attempt, self.max_retries, delay)
                self.sleep(delay)

        raise ProviderUnavailable(f"{self.primary.name} unavailable after retries")

    def generate(self, prompt: str) -> str:
        try:
            return self._generate_with_retry(prompt)
        except Exception as primary_error:
            if self.secondary is None:
                raise ProviderUnavailable(f"{self.primary.name} failed: {primary_error}") from primary_error
            logger.warning("[GEN] %s failed (%s). Falling back to %s.",
                           self.primary.name, primary_error, self.secondary.name)

        try:
            return self.secondary.generate(prompt)
        except Exception as secondary_error:
            logger.error("[GEN] All providers failed: %s", secondary_error)
            raise ProviderUnavailable("All generation providers failed") from secondary_error


def build_generation_client(settings: Settings) -> GenerationClient:
    primary = None
    secondary = None

    if settings.gemini_api_key:
        primary = GeminiGenerator(settings.gemini_api_key, settings.gemini_model)
    if settings.huggingface_api_key:
        secondary = HuggingFaceGenerator(settings.huggingface_api_key, settings.hf_generation_model,
                                         settings.hf_inference_url)

    if primary is None:
        if secondary is None:
            raise ValueError("GEMINI_API_KEY not found in .env file")
        primary, secondary = secondary, None

    return GenerationClient(primary, secondary, max_retries=settings.gen_max_retries,
                            base_delay=settings.gen_base_delay)
