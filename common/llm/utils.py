from __future__ import annotations

import re


_JSON_OBJECT_PATTERN = re.compile(r"\{[\s\S]*\}")


def normalize_model_name(model_name: str) -> str:
    """모델 이름을 정규화하여 사용 기록에 남길 식별자로 만든다.

    '/'가 포함된 경우 마지막 부분만 사용한다.
    예: "google/gemini-2.5-flash" -> "gemini-2.5-flash"
    게이트웨이 경유 여부와 상관없이 같은 모델은 같은 이름으로 집계되도록 한다.
    """
    if not model_name:
        return "unknown"

    value = model_name.strip()
    if "/" in value:
        value = value.split("/")[-1].strip()
    return value or "unknown"


def extract_json_block(text: str) -> str | None:
    """LLM 응답에서 첫 '{' 부터 마지막 '}' 까지의 JSON 후보 문자열을 꺼낸다.

    모델이 ```json 코드 블록이나 앞뒤 설명 문장을 붙여도 본문 객체만 남긴다.
    후보가 없으면 None.
    """
    if not text:
        return None
    match = _JSON_OBJECT_PATTERN.search(text)
    if not match:
        return None
    return match.group(0)
