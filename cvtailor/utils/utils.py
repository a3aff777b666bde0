import os
import json
from typing import List, Union
from dotenv import load_dotenv
import requests

load_dotenv()

OLLAMA = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
LLM_MODEL = os.getenv("LLM_MODEL", "llama3.1:8b")
EMBED_MODEL = os.getenv("EMBED_MODEL", "nomic-embed-text")


def ollama_generate(prompt: str, model: str = None, temperature: float = 0.2,
                    base_url: str = None, timeout: int = 120) -> str:
    model = model or LLM_MODEL
    url = f"{base_url or OLLAMA}/api/generate"
    resp = requests.post(
        url,
        json={
            "model": model,
            "prompt": prompt,
            "options": {"temperature": temperature},
            "stream": False  # single JSON body
        },
        timeout=timeout,
    )
    resp.raise_for_status()
    return resp.json().get("response", "") or ""


def ollama_embed(texts: Union[str, List[str]], model: str = None,
                 base_url: str = None, timeout: int = 30):
    url = f"{base_url or OLLAMA}/api/embed"
    resp = requests.post(url, json={"model": model or EMBED_MODEL, "input": texts}, timeout=timeout)
    resp.raise_for_status()
    data = resp.json()
    vectors = [[float(x) for x in v] for v in data.get("embeddings", [])]
    # supports single or batch
    if isinstance(texts, str):
        return vectors[0] if vectors else []
    return vectors


def safe_json(s: str, fallback: dict):
    try:
        # heuristics to find JSON inside
        start = s.find("{")
        end = s.rfind("}")
        if start >= 0 and end >= 0:
            return json.loads(s[start:end+1])
        return fallback
    except ValueError:
        return fallback
