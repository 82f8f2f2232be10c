from __future__ import annotations

from flask import current_app, has_app_context, has_request_context, session

SUPPORTED_LANGS = {"ja", "en"}
FALLBACK_LANG = "ja"

I18N: dict[str, dict[str, str]] = {
    "area.plot_not_found": {
        "ja": "物理区画が見つかりません",
        "en": "physical plot not found",
    },
    "area.not_a_number": {
        "ja": "契約面積は数値で指定してください",
        "en": "contract area must be a number",
    },
    "area.not_positive": {
        "ja": "契約面積は0より大きい値を指定してください",
        "en": "contract area must be greater than 0",
    },
    "area.out_of_range": {
        "ja": "契約面積は{maximum}㎡以下で指定してください",
        "en": "contract area must not exceed {maximum}㎡",
    },
    "area.too_precise": {
        "ja": "契約面積は小数点以下2桁までで指定してください",
        "en": "contract area allows at most two decimal places",
    },
    "area.exceeds_available": {
        "ja": "契約面積{requested}㎡が利用可能面積{available}㎡を超えています",
        "en": "requested area {requested}㎡ exceeds available area {available}㎡",
    },
    "error.not_found": {"ja": "指定されたデータが見つかりません", "en": "resource not found"},
    "error.unauthorized": {"ja": "ログインが必要です", "en": "authentication required"},
    "error.forbidden": {"ja": "この操作を行う権限がありません", "en": "permission denied"},
    "error.internal": {"ja": "サーバー内部エラーが発生しました", "en": "internal server error"},
    "auth.invalid_credentials": {
        "ja": "メールアドレスまたはパスワードが正しくありません",
        "en": "invalid email or password",
    },
}


def get_locale() -> str:
    default = FALLBACK_LANG
    if has_app_context():
        default = current_app.config.get("DEFAULT_LANG", FALLBACK_LANG)
    if not has_request_context():
        return default if default in SUPPORTED_LANGS else FALLBACK_LANG
    lang = session.get("lang", default)
    if lang not in SUPPORTED_LANGS:
        return FALLBACK_LANG
    return lang


def translate(key: str, **kwargs) -> str:
    lang = get_locale()
    text = I18N.get(key, {}).get(lang, key)
    return text.format(**kwargs) if kwargs else text
