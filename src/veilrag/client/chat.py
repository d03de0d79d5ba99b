"""
Pass-through to a chat-completion endpoint, with retrieved chunks as context.
"""
from typing import Dict, List, Optional

import httpx

from veilrag.client.transport import DEFAULT_TIMEOUT, open_client
from veilrag.shared.errors import ConfigurationError, VeilRagError

DEFAULT_TEMPERATURE = 0.2
DEFAULT_MAX_TOKENS = 2048


class ChatCompletionError(VeilRagError):
    """The chat endpoint answered with a non-success status."""


def build_rag_messages(
    question: str,
    chunks: List[str],
    system_prompt: str = "You are a helpful assistant.",
) -> List[Dict[str, str]]:
    """Prepend retrieved chunks to the user's question."""
    context = "\n\n".join(chunks)
    return [
        {"role": "system", "content": system_prompt},
        {
            "role": "user",
            "content": f"{question}\n\nRelevant Context:\n{context}",
        },
    ]


async def chat_completion(
    url: str,
    token: str,
    model: str,
    messages: List[Dict[str, str]],
    temperature: float = DEFAULT_TEMPERATURE,
    max_tokens: int = DEFAULT_MAX_TOKENS,
    stream: bool = False,
    client: Optional[httpx.AsyncClient] = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> dict:
    """POST a chat-completion request and return the JSON response."""
    if not url or not token:
        raise ConfigurationError("Chat endpoint url and token are required")

    payload = {
        "model": model,
        "messages": messages,
        "temperature": temperature,
        "max_tokens": max_tokens,
        "stream": stream,
    }
    headers = {
        "Authorization": f"Bearer {token}",
        "Content-Type": "application/json",
    }
    async with open_client(client, timeout) as http:
        response = await http.post(url, headers=headers, json=payload, timeout=timeout)
    if not response.is_success:
        raise ChatCompletionError(
            f"Error in chat request: {response.status_code}, {response.text}"
        )
    return response.json()
