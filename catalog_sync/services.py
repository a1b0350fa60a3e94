import asyncio
import logging
import random
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol

from aiolimiter import AsyncLimiter
from openai import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    AsyncOpenAI,
    OpenAIError,
    RateLimitError,
)
from openai.types.chat import (
    ChatCompletionSystemMessageParam,
    ChatCompletionUserMessageParam
)
from tqdm.asyncio import tqdm

from catalog_sync.errors import ConfigError

logger = logging.getLogger(__name__)

SOURCE_TAG_PATTERN = re.compile(r'^\s*<source>(.*)</source>\s*$', re.DOTALL)


@dataclass
class TString:
    key: str
    value: str
    context: str = ""


@dataclass
class TResult:
    key: str
    translated: str


@dataclass
class ServiceArgs:
    strings: List[TString]
    src_lng: str
    target_lng: str
    service_config: Optional[str] = None
    prompt: str = ""
    base_url: Optional[str] = None
    model_name: str = "gpt-4o-mini"
    max_concurrent_api_calls: int = 5
    requests_per_minute: int = 60
    debug: bool = False


class TService(Protocol):
    async def translate_strings(self, args: ServiceArgs) -> List[TResult]:
        ...


class SyncWithoutTranslate:
    """Copies the source text verbatim. Useful to keep key sets in sync."""

    async def translate_strings(self, args: ServiceArgs) -> List[TResult]:
        return [TResult(key=s.key, translated=s.value) for s in args.strings]


class KeyAsTranslation:
    """Uses each key as its own translation."""

    async def translate_strings(self, args: ServiceArgs) -> List[TResult]:
        return [TResult(key=s.key, translated=s.key) for s in args.strings]


def clean_translated_text(translated_text: str, original_text: str) -> str:
    """
    Cleans the translated text by removing wrapping <source> tags, quotes or
    square brackets that are not part of the original text.

    Args:
        translated_text (str): The translated text.
        original_text (str): The original text.

    Returns:
        str: The cleaned translated text.
    """
    match = SOURCE_TAG_PATTERN.match(translated_text)
    if match:
        translated_text = match.group(1).strip()
    if translated_text.startswith('"') and translated_text.endswith('"') and len(translated_text) > 1 and not (
            original_text.startswith('"') and original_text.endswith('"')):
        translated_text = translated_text[1:-1]
    if translated_text.startswith('[') and translated_text.endswith(']') and not (
            original_text.startswith('[') and original_text.endswith(']')):
        translated_text = translated_text[1:-1]
    return translated_text


def build_system_prompt(t_string: TString, args: ServiceArgs) -> str:
    system_prompt = f"""You are a software UI translator.

Task: Translate from {args.src_lng} to {args.target_lng}.
Input: User provides text in <source> tags.
Output: Return only the translated text, without any tags or explanations.
Rules: Keep all placeholders ({{name}}, %s, %d), placeholder tokens such as __PH_abc123__, HTML tags, and formatting unchanged."""
    if t_string.context:
        system_prompt += f"\nContext: {t_string.context}"
    if args.prompt:
        system_prompt += f"\nNote: {args.prompt}"
    return system_prompt


def _retry_delay(attempt: int, base_delay: float, api_exc: Optional[Exception]) -> float:
    retry_after = None
    response = getattr(api_exc, "response", None)
    retry_after_header = response.headers.get("retry-after") if response is not None else None
    if retry_after_header:
        if retry_after_header.isdigit():
            retry_after = float(retry_after_header)
        elif retry_after_header.endswith("ms") and retry_after_header[:-2].isdigit():
            retry_after = float(retry_after_header[:-2]) / 1000
    if retry_after is None:
        retry_after = base_delay * (2 ** (attempt - 1)) + random.uniform(0, 1)
    return retry_after


async def _handle_retry(attempt: int, max_retries: int, base_delay: float, key: str,
                        api_exc: Optional[Exception] = None) -> bool:
    """
    Handle the retry mechanism with exponential backoff and jitter.

    Args:
        attempt (int): The current attempt number.
        max_retries (int): The maximum number of retry attempts.
        base_delay (float): The base delay in seconds.
        key (str): The key being translated.
        api_exc (Optional[Exception]): The exception object from the API, if available.

    Returns:
        bool: True if the operation should retry, False otherwise.
    """
    if attempt >= max_retries:
        logger.error("Translation failed for key '%s' after %d attempts.", key, max_retries)
        return False
    delay = _retry_delay(attempt, base_delay, api_exc)
    logger.info("Retrying request for key '%s' in %.2f seconds (Attempt %d/%d)", key, delay, attempt, max_retries)
    await asyncio.sleep(delay)
    return True


class OpenAITranslate:
    """Translates one string per chat completion request."""

    max_retries = 5
    base_delay = 1.0

    def _create_client(self, args: ServiceArgs) -> AsyncOpenAI:
        api_key = args.service_config
        if not api_key or not api_key.strip():
            raise ConfigError(
                "Missing OpenAI API key: set OPENAI_API_KEY or pass --service-config with your key."
            )
        return AsyncOpenAI(api_key=api_key.strip(), base_url=args.base_url or None)

    async def _translate_single(
            self,
            client: AsyncOpenAI,
            t_string: TString,
            args: ServiceArgs,
            semaphore: asyncio.Semaphore,
            rate_limiter: AsyncLimiter
    ) -> Optional[TResult]:
        system_prompt = build_system_prompt(t_string, args)
        user_prompt = f"<source>{t_string.value}</source>"
        if args.debug:
            logger.debug("OpenAI request for '%s' (model %s)\n  System: %s\n  User: %s",
                         t_string.key, args.model_name, system_prompt, user_prompt)

        async with semaphore, rate_limiter:
            for attempt in range(1, self.max_retries + 1):
                try:
                    response = await client.chat.completions.create(
                        model=args.model_name,
                        messages=[
                            ChatCompletionSystemMessageParam(role="system", content=system_prompt),
                            ChatCompletionUserMessageParam(role="user", content=user_prompt),
                        ],
                        temperature=0,
                        max_tokens=2048,
                        timeout=60.0,
                    )
                    if not response.choices:
                        logger.warning("OpenAI returned no choices for key '%s'.", t_string.key)
                        return None
                    content = response.choices[0].message.content
                except (RateLimitError, APITimeoutError, APIConnectionError, APIStatusError, OpenAIError) as api_exc:
                    logger.error("API error occurred: %s - %s", api_exc.__class__.__name__, api_exc)
                    if await _handle_retry(attempt, self.max_retries, self.base_delay, t_string.key, api_exc):
                        continue
                    return None
                except Exception as general_exc:
                    logger.error("An unexpected error occurred for key '%s': %s", t_string.key, general_exc,
                                 exc_info=True)
                    return None

                if content is None:
                    logger.warning("OpenAI returned no content for key '%s'.", t_string.key)
                    return None
                translated = clean_translated_text(content.strip(), t_string.value)
                logger.debug("Translated key '%s' successfully.", t_string.key)
                return TResult(key=t_string.key, translated=translated)
        return None

    async def translate_strings(self, args: ServiceArgs) -> List[TResult]:
        client = self._create_client(args)
        semaphore = asyncio.Semaphore(max(1, args.max_concurrent_api_calls))
        rate_limiter = AsyncLimiter(max(1, args.requests_per_minute), 60)
        tasks = [
            asyncio.create_task(self._translate_single(client, t_string, args, semaphore, rate_limiter))
            for t_string in args.strings
        ]
        results: List[TResult] = []
        try:
            for coro in tqdm.as_completed(tasks, desc=f"Translating to {args.target_lng}", unit="string"):
                result = await coro
                if result is not None:
                    results.append(result)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        return results


SERVICE_REGISTRY: Dict[str, TService] = {
    "openai": OpenAITranslate(),
    "sync-without-translate": SyncWithoutTranslate(),
    "key-as-translation": KeyAsTranslation(),
}


def get_service(name: str) -> TService:
    try:
        return SERVICE_REGISTRY[name]
    except KeyError:
        raise ConfigError(
            f"Unknown service '{name}'. Available services: {', '.join(SERVICE_REGISTRY)}"
        ) from None
