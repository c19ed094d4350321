"""Term sets and protected-content corpus shared by the DLP checks.

Everything here is built once into an immutable :class:`DlpContext`. A reload
builds a new context and swaps it in; a context is never mutated.
"""

from __future__ import annotations

import json
import logging
import unicodedata
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Mapping, Sequence

logger = logging.getLogger(__name__)

MIN_SIGNIFICANT_LENGTH = 3

STATIC_SENSITIVE_TERMS: tuple[str, ...] = (
    # confidentiality / leakage
    "secret", "confidential", "proprietary", "classified", "restricted",
    "leak", "leaking", "leakage", "disclose", "disclosed", "breach", "exfiltrate", "exfiltration", "dump",
    "sensitive",
    "סוד", "סודי", "חסוי", "קנייני", "מסווג", "מוגבל", "דליפה", "דליפות", "זליגה", "חשיפה", "לחשוף", "פרצה",
    "secreto", "confidencial", "clasificado", "restringido", "filtración", "fuga", "divulgar", "divulgación",
    "sensible",
    "confidentiel", "classifié", "restreint", "fuite", "divulgation",
    "سر", "سري", "سريّة", "تسريب", "تسريبات", "كشف", "اختراق", "حسّاس",
    "секрет", "конфиденциально", "секретно", "утечка", "утечки", "раскрытие", "взлом", "чувствительный",
    "机密", "保密", "绝密", "受限", "泄露", "泄漏", "外泄", "披露", "敏感", "漏洞",
    # malicious intent
    "steal", "theft", "hack", "hacking", "exploit", "bypass", "backdoor", "ransom", "ransomware",
    "גניבה", "לגנוב", "שוד", "פריצה", "לפרוץ", "האקר", "האק", "לעקוף", "עקיפה", "דלת אחורית", "כופרה",
    "לשאוב", "שאיבה", "מידע סודי", "מידע רגיש",
    "robar", "robo", "hacker", "piratear", "explotar", "puerta trasera",
    "vol", "voler", "pirater", "piratage", "contourner", "porte dérobée", "rançongiciel",
    "سرقة", "اسرق", "هاكر", "استغلال", "تجاوز", "باب خلفي", "برمجية فدية",
    "кража", "украсть", "хакер", "эксплойт", "обход", "бекдор", "вымогатель",
    "盗取", "窃取", "黑客", "入侵", "攻击", "利用", "绕过", "后门", "勒索软件",
    # credentials
    "password", "token", "api_key", "apikey", "secret_key", "client_secret", "privatekey", "ssh", "rsa",
    "סיסמה", "סיסמא", "טוקן", "מפתח", "מפתח סודי", "מפתח api", "סוד לקוח", "מפתח פרטי", "אימות", "כניסה",
    "contraseña", "clave", "llave", "llave privada", "secreto del cliente", "autenticación",
    "motdepasse", "mot de passe", "jeton", "clé", "clé privée", "secret client", "authentification",
    "كلمة المرور", "رمز", "مفتاح", "مفتاح خاص", "سر العميل", "مصادقة",
    "пароль", "токен", "ключ", "секретный ключ", "приватный ключ", "секрет клиента", "аутентификация",
    "密码", "口令", "令牌", "访问令牌", "密钥", "秘钥", "私钥", "客户端密钥", "认证", "身份验证",
    # personal and financial
    "ssn", "passport", "credit", "card", "cvv", "iban", "swift", "email", "phone",
    "מספר זהות", "תעודת זהות", "דרכון", "אשראי", "כרטיס אשראי", "מספר כרטיס", "חשבון בנק",
    "מספר חשבון", "מספר בנק", "מספר ניתוב", "מס זיהוי", "תאריך לידה", "אימייל", "טלפון", "כתובת",
    "dni", "pasaporte", "crédito", "tarjeta", "correo", "teléfono", "dirección",
    "passeport", "carte", "courriel", "téléphone", "adresse",
    "رقم الهوية", "جواز السفر", "ائتمان", "بطاقة", "بريد", "هاتف", "عنوان",
    "паспорт", "кредит", "карта", "почта", "электронная почта", "телефон", "адрес",
    "身份证", "护照", "信用卡", "卡号", "安全码", "邮箱", "电子邮件", "电话", "地址", "银行账号", "账户",
    # source code and config
    ".env", "dotenv", "pem", "vault", "secrets",
    # protected material vocabulary
    "recipe", "ingredients", "formula",
)

STATIC_BENIGN_TERMS: tuple[str, ...] = (
    "hi", "hello", "hey", "yo", "thanks", "thank", "please", "sorry", "ok", "okay", "cool", "great", "nice",
    "good", "bad", "yes", "no", "maybe", "sure", "fine", "done", "later", "bye", "goodbye", "welcome",
    "cheers", "congrats", "well", "morning", "evening", "night", "today", "tomorrow", "yesterday", "soon",
    "now", "minute", "second", "hour", "how", "are", "you", "doing", "what", "when", "where", "why", "who",
    "which", "because", "see", "lol", "haha", "brb", "gtg", "idk", "imo", "imho", "pls", "thx", "np",
    "שלום", "היי", "הי", "תודה", "בבקשה", "מצוין", "מעולה", "אחלה", "סבבה", "כן", "לא", "אולי", "ברור",
    "בסדר", "ביי", "להתראות", "בוקר", "בוקר טוב", "ערב טוב", "לילה טוב", "היום", "מחר", "אתמול", "עכשיו",
    "אחר כך", "מיד", "שניה", "שנייה", "דקה", "שעה", "מה", "מתי", "איפה", "למה", "מי", "איך", "איזה", "בגלל",
    "נתראה", "בקרוב", "חח", "חחח", "לול", "תכף", "עוד מעט",
)


def normalize_text(text: str) -> str:
    """Lowercase, NFKC-normalize and turn punctuation and symbols into single spaces."""

    lowered = unicodedata.normalize("NFKC", str(text or "").lower())
    chars = [" " if unicodedata.category(ch)[0] in {"P", "S"} else ch for ch in lowered]
    return " ".join("".join(chars).split())


def tokenize(text: str) -> list[str]:
    normalized = normalize_text(text)
    return normalized.split(" ") if normalized else []


@dataclass(frozen=True, slots=True)
class ProtectedContentEmbedding:
    item_id: str
    name: str
    vector: tuple[float, ...]
    tokens: tuple[str, ...] = ()

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ProtectedContentEmbedding":
        vector = data.get("vector", data.get("embedding"))
        if not isinstance(vector, Sequence) or isinstance(vector, (str, bytes)) or not vector:
            raise ValueError("corpus entry has no vector")
        tokens = data.get("tokens", data.get("ingredients")) or ()
        return cls(
            item_id=str(data.get("id", "")),
            name=str(data.get("name", "")),
            vector=tuple(float(value) for value in vector),
            tokens=tuple(str(token) for token in tokens),
        )

    def as_dict(self) -> dict[str, Any]:
        return {"id": self.item_id, "name": self.name, "vector": list(self.vector), "tokens": list(self.tokens)}


def load_corpus(path: str | Path) -> tuple[ProtectedContentEmbedding, ...]:
    """Read the precomputed corpus; a missing or broken file yields an empty corpus."""

    try:
        raw = Path(path).read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.warning("protected content corpus missing at %s; semantic check disabled", path)
        return ()
    except OSError as exc:
        logger.warning("protected content corpus unreadable at %s: %s", path, exc)
        return ()
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        logger.warning("protected content corpus is not valid JSON: %s", exc)
        return ()
    if not isinstance(data, list):
        logger.warning("protected content corpus must be a list of entries")
        return ()
    entries: list[ProtectedContentEmbedding] = []
    for index, item in enumerate(data):
        if not isinstance(item, Mapping):
            logger.warning("skipping corpus entry %d: not an object", index)
            continue
        try:
            entries.append(ProtectedContentEmbedding.from_mapping(item))
        except (TypeError, ValueError) as exc:
            logger.warning("skipping corpus entry %d: %s", index, exc)
    return tuple(entries)


@dataclass(frozen=True, slots=True)
class DlpContext:
    sensitive_terms: frozenset[str]
    sensitive_phrases: tuple[tuple[str, ...], ...]
    benign_terms: frozenset[str]
    corpus: tuple[ProtectedContentEmbedding, ...] = ()


def build_dlp_context(
    corpus: Iterable[ProtectedContentEmbedding] = (),
    *,
    sensitive: Iterable[str] = STATIC_SENSITIVE_TERMS,
    benign: Iterable[str] = STATIC_BENIGN_TERMS,
) -> DlpContext:
    """Assemble term sets; corpus names and tokens become sensitive vocabulary."""

    entries = tuple(corpus)
    terms: set[str] = set()
    phrases: set[tuple[str, ...]] = set()

    def add(raw: str, *, split: bool) -> None:
        tokens = tokenize(raw)
        if not tokens:
            return
        if split or len(tokens) == 1:
            terms.update(tokens)
        else:
            phrases.add(tuple(tokens))

    for term in sensitive:
        add(term, split=False)
    for entry in entries:
        add(entry.name, split=True)
        for token in entry.tokens:
            add(token, split=True)

    benign_terms = frozenset(normalize_text(term) for term in benign if normalize_text(term))
    return DlpContext(
        sensitive_terms=frozenset(terms),
        sensitive_phrases=tuple(sorted(phrases)),
        benign_terms=benign_terms,
        corpus=entries,
    )
