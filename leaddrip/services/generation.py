"""
Generation gateway — one entry point for every LLM call in the pipeline.

Each feature (extraction, scoring, research, outreach, general) is routed to a
configured provider; when that provider fails after retries the gateway tries
the fallback provider before giving up. Token usage is accumulated per
provider so a run can report what it spent.

Providers: OpenAI and Anthropic through their SDKs, Ollama over plain HTTP.
"""
import json
import logging
import re
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Optional, Type, TypeVar

import anthropic
import openai
import requests
from pydantic import BaseModel, ValidationError

from leaddrip.config import GENERATION_FEATURES, GENERATION_TIMEOUT
from leaddrip.errors import ProviderRequestError, ProviderUnavailable, StructuredOutputError
from leaddrip.services.circuit_breaker import CircuitOpenError
from leaddrip.services.retry import DEFAULT_RETRY_POLICY, RetryPolicy, call_with_retry, is_transient_status

logger = logging.getLogger('services.generation')

T = TypeVar('T', bound=BaseModel)

# Failures that move the gateway on to the fallback provider.
PROVIDER_ERRORS = (
    ProviderRequestError,
    CircuitOpenError,
    requests.RequestException,
    openai.APIError,
    anthropic.APIError,
)


@dataclass
class GenerationResponse:
    text: str
    provider: str
    model: str
    usage: Dict[str, int] = field(default_factory=dict)


class GenerationProvider(ABC):
    """A single LLM backend. Subclasses implement _complete()."""
    name: str = ''

    def __init__(self, model: str, breaker=None, timeout: float = GENERATION_TIMEOUT):
        self.model = model
        self.breaker = breaker
        self.timeout = timeout

    def complete(self, prompt: str, system: str = None, json_mode: bool = False,
                 temperature: float = 0.2, max_tokens: int = 2000) -> GenerationResponse:
        if self.breaker is not None:
            return self.breaker.call(self._complete, prompt, system, json_mode, temperature, max_tokens)
        return self._complete(prompt, system, json_mode, temperature, max_tokens)

    @abstractmethod
    def _complete(self, prompt, system, json_mode, temperature, max_tokens) -> GenerationResponse:
        ...


class OpenAIProvider(GenerationProvider):
    name = 'openai'

    def __init__(self, client, model: str = 'gpt-4o', **kwargs):
        super().__init__(model, **kwargs)
        self.client = client

    def _complete(self, prompt, system, json_mode, temperature, max_tokens):
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        kwargs = dict(
            model=self.model,
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=self.timeout,
        )
        if json_mode:
            kwargs['response_format'] = {"type": "json_object"}
        response = self.client.chat.completions.create(**kwargs)
        usage = {}
        if response.usage is not None:
            usage = {
                'prompt_tokens': response.usage.prompt_tokens or 0,
                'completion_tokens': response.usage.completion_tokens or 0,
            }
        return GenerationResponse(
            text=response.choices[0].message.content or '',
            provider=self.name,
            model=self.model,
            usage=usage,
        )


class AnthropicProvider(GenerationProvider):
    name = 'anthropic'

    def __init__(self, client, model: str = 'claude-sonnet-4-20250514', **kwargs):
        super().__init__(model, **kwargs)
        self.client = client

    def _complete(self, prompt, system, json_mode, temperature, max_tokens):
        kwargs = dict(
            model=self.model,
            max_tokens=max_tokens,
            temperature=temperature,
            messages=[{"role": "user", "content": prompt}],
            timeout=self.timeout,
        )
        if system:
            kwargs['system'] = system
        response = self.client.messages.create(**kwargs)
        text = ''.join(
            block.text for block in response.content if getattr(block, 'type', 'text') == 'text'
        )
        usage = {}
        if response.usage is not None:
            usage = {
                'prompt_tokens': response.usage.input_tokens or 0,
                'completion_tokens': response.usage.output_tokens or 0,
            }
        return GenerationResponse(text=text, provider=self.name, model=self.model, usage=usage)


class OllamaProvider(GenerationProvider):
    """Local model served by Ollama's /api/chat endpoint."""
    name = 'ollama'

    def __init__(self, base_url: str, model: str, **kwargs):
        super().__init__(model, **kwargs)
        self.base_url = base_url.rstrip('/')

    def _complete(self, prompt, system, json_mode, temperature, max_tokens):
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        body = {
            "model": self.model,
            "messages": messages,
            "stream": False,
            "options": {"temperature": temperature, "num_predict": max_tokens},
        }
        if json_mode:
            body["format"] = "json"
        resp = requests.post(f"{self.base_url}/api/chat", json=body, timeout=self.timeout)
        if resp.status_code >= 400:
            raise ProviderRequestError(
                f"Ollama returned {resp.status_code}: {resp.text[:200]}",
                provider=self.name,
                status_code=resp.status_code,
                transient=is_transient_status(resp.status_code),
            )
        data = resp.json()
        return GenerationResponse(
            text=data.get("message", {}).get("content", ''),
            provider=self.name,
            model=self.model,
            usage={
                'prompt_tokens': data.get('prompt_eval_count', 0),
                'completion_tokens': data.get('eval_count', 0),
            },
        )


_JSON_FENCE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)


def extract_json_text(text: str) -> str:
    """Strip markdown fences and surrounding chatter from a JSON reply."""
    text = (text or '').strip()
    fenced = _JSON_FENCE.search(text)
    if fenced:
        text = fenced.group(1).strip()
    start, end = text.find('{'), text.rfind('}')
    if start != -1 and end > start:
        return text[start:end + 1]
    return text


class GenerationGateway:
    """
    Routes generation requests to providers by feature.

    providers:        name → GenerationProvider
    default_provider: used for any feature without an explicit route
    routing:          feature → provider name
    fallback_provider: tried once when the routed provider fails
    """

    def __init__(
        self,
        providers: Dict[str, GenerationProvider],
        default_provider: str,
        routing: Dict[str, str] = None,
        fallback_provider: Optional[str] = None,
        retry_policy: RetryPolicy = None,
    ):
        if not providers:
            raise ProviderUnavailable("No generation provider configured")
        if default_provider not in providers:
            if fallback_provider in providers:
                logger.warning("Default provider '%s' not configured, using fallback '%s'",
                               default_provider, fallback_provider)
                default_provider = fallback_provider
            else:
                raise ProviderUnavailable(f"Generation provider '{default_provider}' is not configured")
        unknown = set(routing or {}) - set(GENERATION_FEATURES)
        if unknown:
            raise ValueError(f"Unknown generation features: {sorted(unknown)}")
        self.providers = providers
        self.default_provider = default_provider
        self.routing = dict(routing or {})
        self.fallback_provider = fallback_provider if fallback_provider in providers else None
        self.retry_policy = retry_policy or DEFAULT_RETRY_POLICY
        self._usage: Dict[str, Dict[str, int]] = {}
        self._usage_lock = threading.Lock()

    def provider_for(self, feature: str) -> str:
        name = self.routing.get(feature, self.default_provider)
        return name if name in self.providers else self.default_provider

    def _provider_chain(self, feature):
        primary = self.provider_for(feature)
        chain = [primary]
        if self.fallback_provider and self.fallback_provider != primary:
            chain.append(self.fallback_provider)
        return chain

    def generate(self, prompt: str, system: str = None, feature: str = 'general',
                 json_mode: bool = False, temperature: float = 0.2,
                 max_tokens: int = 2000) -> GenerationResponse:
        last_error = None
        for name in self._provider_chain(feature):
            provider = self.providers[name]
            try:
                response = call_with_retry(
                    self.retry_policy, provider.complete, prompt,
                    system=system, json_mode=json_mode,
                    temperature=temperature, max_tokens=max_tokens,
                )
            except PROVIDER_ERRORS as e:
                logger.warning("Generation via '%s' failed for feature '%s': %s", name, feature, e)
                last_error = e
                continue
            self._record_usage(response)
            return response

        raise ProviderRequestError(
            f"All generation providers failed for '{feature}': {last_error}",
            provider=','.join(self._provider_chain(feature)),
        )

    def generate_structured(self, prompt: str, schema: Type[T], system: str = None,
                            feature: str = 'general', max_attempts: int = 3,
                            temperature: float = 0.1, max_tokens: int = 2000) -> T:
        """Generate JSON and validate it against `schema`, re-prompting on invalid output."""
        schema_hint = (
            f"Respond with a single JSON object matching the {schema.__name__} schema:\n"
            f"{json.dumps(schema.model_json_schema())}"
        )
        full_system = f"{system}\n\n{schema_hint}" if system else schema_hint

        last_error = None
        for attempt in range(1, max_attempts + 1):
            response = self.generate(
                prompt, system=full_system, feature=feature, json_mode=True,
                temperature=temperature, max_tokens=max_tokens,
            )
            try:
                return schema.model_validate_json(extract_json_text(response.text))
            except ValidationError as e:
                last_error = e
                logger.warning("%s output failed validation (attempt %d/%d): %s",
                               schema.__name__, attempt, max_attempts, e.errors()[:3])

        raise StructuredOutputError(
            f"{schema.__name__} output invalid after {max_attempts} attempts: {last_error}",
            attempts=max_attempts,
        )

    # ── Usage ─────────────────────────────────────────────────────────

    def _record_usage(self, response: GenerationResponse):
        with self._usage_lock:
            totals = self._usage.setdefault(
                response.provider, {'calls': 0, 'prompt_tokens': 0, 'completion_tokens': 0},
            )
            totals['calls'] += 1
            totals['prompt_tokens'] += response.usage.get('prompt_tokens', 0)
            totals['completion_tokens'] += response.usage.get('completion_tokens', 0)

    def usage(self) -> Dict[str, Dict[str, int]]:
        with self._usage_lock:
            return {name: dict(totals) for name, totals in self._usage.items()}


def usage_delta(before: Dict, after: Dict) -> Dict[str, Dict[str, int]]:
    """What was spent between two usage() snapshots."""
    delta = {}
    for name, totals in after.items():
        prior = before.get(name, {})
        diff = {k: v - prior.get(k, 0) for k, v in totals.items()}
        if any(diff.values()):
            delta[name] = diff
    return delta
