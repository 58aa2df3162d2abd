"""
프롬프트 템플릿 로더.

Templates are str.format strings: literal JSON braces are doubled.
"""

from pathlib import Path

PROMPTS_DIR = Path(__file__).parent


def load_prompt(name: str) -> str:
    """프롬프트 템플릿 파일 로드."""
    path = PROMPTS_DIR / f"{name}.txt"
    if not path.exists():
        raise FileNotFoundError(f"Prompt template not found: {path}")
    return path.read_text(encoding="utf-8")


def render_prompt(name: str, **kwargs) -> str:
    """프롬프트 템플릿 로드 후 변수 치환."""
    template = load_prompt(name)
    return template.format(**kwargs)


# 프롬프트 템플릿 이름 상수
INTERVENE = "intervene"
SCORE = "score"
FINAL_IMAGE = "final_image"
REGION_CONTEXT = "region_context"
SYSTEM = "system"
