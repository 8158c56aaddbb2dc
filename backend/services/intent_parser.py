"""Intent Parser - Turn assistant messages into structured intents.

Supports French and English, as slash-commands (``/delete order 123``) or
natural language (``Créer une tâche "Test" pour demain à 14h``).

Parsing never fails: input that matches nothing degrades to a read on tasks,
which the validator or guard downstream will reject if it makes no sense.
The parser is pure for a given ``now``.
"""
import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from models import Intent, Language, Operation, Resource

logger = logging.getLogger(__name__)

# ============================================================================
# Keyword tables (fixed per language, table order breaks position ties)
# ============================================================================

OPERATION_KEYWORDS = {
    Language.FR: {
        Operation.DELETE: ("supprimer", "supprime", "effacer", "efface", "retirer", "delete", "remove"),
        Operation.UPDATE: ("mettre à jour", "mets à jour", "modifier", "modifie", "changer", "change",
                           "marquer", "marque", "update", "edit"),
        Operation.CREATE: ("créer", "crée", "creer", "ajouter", "ajoute", "nouveau", "nouvelle",
                           "planifier", "planifie", "create", "add", "new"),
        Operation.LIST: ("montrer toutes", "montrer tous", "afficher toutes", "afficher tous",
                         "voir toutes", "voir tous", "toutes les", "tous les", "lister", "liste", "list"),
        Operation.READ: ("afficher", "affiche", "montrer", "montre", "voir", "show", "view"),
    },
    Language.EN: {
        Operation.DELETE: ("delete", "remove", "erase", "del"),
        Operation.UPDATE: ("update", "modify", "change", "edit", "mark", "set"),
        Operation.CREATE: ("create", "add", "new", "make", "schedule"),
        Operation.LIST: ("show all", "display all", "view all", "see all", "list"),
        Operation.READ: ("show", "view", "display", "see", "get", "find"),
    },
}

RESOURCE_KEYWORDS = {
    Language.FR: {
        Resource.TASK: ("tâche", "tâches", "tache", "taches", "task", "tasks", "todo"),
        Resource.ORDER: ("commande", "commandes", "order", "orders"),
        Resource.CLIENT: ("client", "clients", "cliente", "clientes", "customer", "customers"),
        Resource.EVENT: ("événement", "événements", "evenement", "evenements", "rendez-vous", "rdv",
                         "réunion", "réunions", "event", "events", "meeting"),
    },
    Language.EN: {
        Resource.TASK: ("task", "tasks", "todo", "todos"),
        Resource.ORDER: ("order", "orders"),
        Resource.CLIENT: ("client", "clients", "customer", "customers"),
        Resource.EVENT: ("event", "events", "meeting", "meetings", "appointment", "appointments"),
    },
}

PLURAL_RESOURCE_WORDS = {
    "tâches", "taches", "tasks", "todos", "commandes", "orders", "clients", "clientes", "customers",
    "événements", "evenements", "réunions", "events", "meetings", "appointments",
}

STATUS_KEYWORDS = {
    Language.FR: {
        "completed": ("terminé", "terminée", "terminés", "terminées", "fini", "finie", "finies", "finis", "fait"),
        "cancelled": ("annulé", "annulée", "annulés", "annulées"),
        "in_progress": ("en cours",),
        "confirmed": ("confirmé", "confirmée", "confirmés", "confirmées"),
        "pending": ("en attente", "à faire"),
    },
    Language.EN: {
        "in_progress": ("in progress", "ongoing"),
        "completed": ("completed", "done", "finished"),
        "cancelled": ("cancelled", "canceled"),
        "confirmed": ("confirmed",),
        "pending": ("pending", "waiting"),
    },
}

PRIORITY_KEYWORDS = {
    Language.FR: {
        "urgent": ("urgent", "urgente", "urgentes", "critique"),
        "high": ("élevée", "élevé", "haute", "important", "importante"),
        "medium": ("moyenne", "moyen", "normale", "normal"),
        "low": ("faible", "basse", "bas"),
    },
    Language.EN: {
        "urgent": ("urgent", "critical"),
        "high": ("high", "important"),
        "medium": ("medium", "normal"),
        "low": ("low",),
    },
}

# List filters only; on a create the same words resolve to a due date
DATE_RANGE_KEYWORDS = {
    Language.FR: {
        "overdue": ("en retard", "overdue"),
        "today": ("aujourd'hui", "aujourd’hui", "today"),
        "tomorrow": ("demain", "tomorrow"),
        "this_week": ("cette semaine", "this week"),
        "next_week": ("semaine prochaine", "next week"),
        "this_month": ("ce mois-ci", "ce mois", "this month"),
    },
    Language.EN: {
        "overdue": ("overdue", "past due"),
        "today": ("today",),
        "tomorrow": ("tomorrow",),
        "this_week": ("this week",),
        "next_week": ("next week",),
        "this_month": ("this month",),
    },
}

FRENCH_HINTS = (
    "créer", "ajouter", "tâche", "tâches", "commande", "commandes", "événement", "réunion",
    "modifier", "supprimer", "afficher", "montrer", "lister", "toutes", "tous", "demain",
    "aujourd'hui", "pour", "avec", "une", "les", "des",
)
ENGLISH_HINTS = (
    "create", "add", "task", "tasks", "order", "orders", "event", "meeting", "update", "delete",
    "remove", "show", "list", "all", "tomorrow", "today", "for", "with", "the",
)

# Slash command names are matched by substring, singular stems only
SLASH_RESOURCES = (
    (Resource.CLIENT, ("client", "customer")),
    (Resource.ORDER, ("order", "commande")),
    (Resource.EVENT, ("event", "meeting", "rdv")),
    (Resource.TASK, ("task", "tache", "tâche", "todo")),
)

TITLE_SKIP_WORDS = {
    "un", "une", "le", "la", "les", "l'", "des", "du", "de", "a", "an", "the", "my", "mon", "ma",
    "mes", "nouveau", "nouvelle", "nouvel", "new", "all", "tout", "toute", "toutes", "tous",
}
TITLE_STOP_WORDS = {
    "pour", "for", "avec", "with", "à", "at", "on", "by", "par", "due", "id", "id:", "email",
    "statut", "status", "priorité", "priority", "le", "avant", "before",
}
DATE_WORDS = {"demain", "tomorrow", "aujourd'hui", "aujourd’hui", "today"}
CURRENCY_WORDS = {"eur", "usd", "euro", "euros", "dollar", "dollars"}
CONFIRM_ALL_WORDS = r"(?<!\w)(?:all|tout|toute|toutes|tous)(?!\w)"

# ============================================================================
# Patterns
# ============================================================================

EMAIL_RE = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")
UUID_RE = re.compile(r"\b[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}\b")
IDENTIFIER_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]{0,63}$")
MONEY_SUFFIX_RE = re.compile(r"(\d+(?:[.,]\d{1,2})?)\s*(€|\$|eur\b|usd\b|euros?\b|dollars?\b)", re.IGNORECASE)
MONEY_PREFIX_RE = re.compile(r"(€|\$)\s*(\d+(?:[.,]\d{1,2})?)")
DATE_RE = re.compile(r"(?<![\d/])(\d{1,2})[/-](\d{1,2})[/-](\d{2,4})(?!\d)")
TIME_PREFIXED_RE = re.compile(
    r"(?<!\w)(?:à|at)\s*(\d{1,2})(?!\d)(?:\s*[h:]\s*(\d{2})?)?\s*(am|pm)?(?!\w)", re.IGNORECASE
)
TIME_BARE_H_RE = re.compile(r"(?<![\w/:])(\d{1,2})h(\d{2})?(?!\w)", re.IGNORECASE)
TIME_BARE_COLON_RE = re.compile(r"(?<![\w/:])(\d{1,2}):(\d{2})(?!\d)\s*(am|pm)?(?!\w)", re.IGNORECASE)
TOMORROW_RE = re.compile(r"(?<!\w)(?:demain|tomorrow)(?!\w)", re.IGNORECASE)
TODAY_RE = re.compile(r"(?<!\w)(?:aujourd'hui|aujourd’hui|today)(?!\w)", re.IGNORECASE)
QUOTED_RE = re.compile(r"\"([^\"]+)\"|“([^”]+)”|(?<!\w)'([^']+)'(?!\w)")
NUMBER_TOKEN_RE = re.compile(r"^\d+(?:[.,]\d+)?$")
TIME_TOKEN_RE = re.compile(r"^\d{1,2}(?:h\d{0,2}|:\d{2})?(?:am|pm)?$", re.IGNORECASE)
DATE_TOKEN_RE = re.compile(r"^\d{1,2}[/-]\d{1,2}[/-]\d{2,4}$")
MONEY_TOKEN_RE = re.compile(r"^[€$]?\d+(?:[.,]\d+)?(?:€|\$|eur|usd)?$", re.IGNORECASE)

PUNCTUATION = ".,;:!?()[]"


def _keyword_pattern(keyword: str) -> re.Pattern:
    return re.compile(r"(?<!\w)" + re.escape(keyword) + r"(?!\w)", re.IGNORECASE)


_PATTERN_CACHE: Dict[str, re.Pattern] = {}


def _find(keyword: str, text: str) -> Optional[re.Match]:
    pattern = _PATTERN_CACHE.get(keyword)
    if pattern is None:
        pattern = _keyword_pattern(keyword)
        _PATTERN_CACHE[keyword] = pattern
    return pattern.search(text)


def _earliest_match(text: str, table: Dict[Any, Tuple[str, ...]]) -> Optional[Tuple[Any, re.Match]]:
    """Return the table key whose keyword starts first in text.

    Equal start positions keep the first hit in table order.
    """
    best: Optional[Tuple[Any, re.Match]] = None
    for key, keywords in table.items():
        for keyword in keywords:
            match = _find(keyword, text)
            if match and (best is None or match.start() < best[1].start()):
                best = (key, match)
    return best


def detect_language(text: str) -> Language:
    """Count French vs English hint words; ties favour English."""
    french = sum(1 for word in FRENCH_HINTS if _find(word, text))
    english = sum(1 for word in ENGLISH_HINTS if _find(word, text))
    return Language.FR if french > english else Language.EN


# ============================================================================
# Parameter extraction
# ============================================================================

def _parse_time(text: str) -> Optional[Tuple[int, int]]:
    for pattern in (TIME_PREFIXED_RE, TIME_BARE_COLON_RE, TIME_BARE_H_RE):
        match = pattern.search(text)
        if not match:
            continue
        hours = int(match.group(1))
        minutes = int(match.group(2) or 0)
        meridiem = match.group(3).lower() if pattern.groups >= 3 and match.group(3) else None
        if meridiem == "pm" and hours < 12:
            hours += 12
        elif meridiem == "am" and hours == 12:
            hours = 0
        if hours > 23 or minutes > 59:
            continue
        return hours, minutes
    return None


def parse_human_date(text: str, now: datetime) -> Optional[datetime]:
    """Resolve 'demain', 'today', 'at 2pm', '15/12/2024' style expressions."""
    day: Optional[datetime] = None
    if TOMORROW_RE.search(text):
        day = now + timedelta(days=1)
    elif TODAY_RE.search(text):
        day = now
    else:
        match = DATE_RE.search(text)
        if match:
            d, m, y = (int(g) for g in match.groups())
            year = 2000 + y if y < 100 else y
            try:
                day = datetime(year, m, d, tzinfo=now.tzinfo)
            except ValueError:
                day = None

    clock = _parse_time(text)
    if clock:
        base = day or now
        return base.replace(hour=clock[0], minute=clock[1], second=0, microsecond=0)
    return day


def parse_money(text: str) -> Optional[Dict[str, Any]]:
    """Extract the first amount with a currency marker."""
    amount_str = None
    marker = None
    match = MONEY_SUFFIX_RE.search(text)
    if match:
        amount_str, marker = match.group(1), match.group(2)
    else:
        match = MONEY_PREFIX_RE.search(text)
        if match:
            marker, amount_str = match.group(1), match.group(2)
    if amount_str is None:
        return None

    marker = marker.lower()
    if marker == "€" or marker.startswith("eur"):
        currency = "EUR"
    elif marker == "$" or marker.startswith("usd") or marker.startswith("dollar"):
        currency = "USD"
    else:
        currency = "EUR" if "€" in text else "USD"
    return {"amount": float(amount_str.replace(",", ".")), "currency": currency}


def _match_keyword_table(text: str, table: Dict[str, Tuple[str, ...]]) -> Optional[str]:
    hit = _earliest_match(text, table)
    return hit[0] if hit else None


def _all_keywords(language: Language) -> set:
    words = set()
    for table in (OPERATION_KEYWORDS[language], RESOURCE_KEYWORDS[language]):
        for keywords in table.values():
            words.update(keywords)
    return words


def _is_filtered_token(word: str) -> bool:
    lowered = word.lower()
    return bool(
        NUMBER_TOKEN_RE.match(word)
        or UUID_RE.fullmatch(word)
        or "@" in word
        or "€" in word
        or "$" in word
        or MONEY_TOKEN_RE.match(word) and any(c.isdigit() for c in word)
        or TIME_TOKEN_RE.match(word)
        or DATE_TOKEN_RE.match(word)
        or lowered in DATE_WORDS
        or lowered in CURRENCY_WORDS
    )


def infer_title(text: str, language: Language) -> Optional[str]:
    """Take the words after the first operation/resource keyword."""
    anchors = [
        _earliest_match(text, OPERATION_KEYWORDS[language]),
        _earliest_match(text, RESOURCE_KEYWORDS[language]),
    ]
    anchors = [a for a in anchors if a]
    if not anchors:
        return None
    anchor_end = min(anchors, key=lambda a: a[1].start())[1].end()

    keywords = _all_keywords(language)
    modifiers = set()
    for table in (STATUS_KEYWORDS[language], PRIORITY_KEYWORDS[language]):
        for values in table.values():
            modifiers.update(values)

    # Blank out multi-word modifiers ("en cours") and date buckets ("this week")
    # so their words never leak into the title
    phrases = {phrase for phrase in modifiers if " " in phrase}
    for values in DATE_RANGE_KEYWORDS[language].values():
        phrases.update(values)
    masked = text
    for phrase in phrases:
        masked = _keyword_pattern(phrase).sub(lambda m: " " * len(m.group()), masked)

    collected: List[str] = []
    for token in re.finditer(r"\S+", masked):
        if token.start() < anchor_end:
            continue
        word = token.group().strip(PUNCTUATION)
        if not word:
            continue
        lowered = word.lower()
        if lowered in keywords:
            continue
        if not collected and (lowered in TITLE_SKIP_WORDS or lowered in modifiers):
            continue
        if lowered in TITLE_STOP_WORDS:
            break
        if _is_filtered_token(word):
            continue
        collected.append(word)

    return " ".join(collected) if collected else None


def _title_from_words(words: List[str]) -> Optional[str]:
    collected: List[str] = []
    for raw in words:
        word = raw.strip(PUNCTUATION)
        if not word:
            continue
        lowered = word.lower()
        if not collected and lowered in TITLE_SKIP_WORDS:
            continue
        if lowered in TITLE_STOP_WORDS:
            break
        if _is_filtered_token(word):
            continue
        collected.append(word)
    return " ".join(collected) if collected else None


def _extract_count(text: str, language: Language) -> Optional[int]:
    words = [w for keywords in RESOURCE_KEYWORDS[language].values() for w in keywords]
    alternation = "|".join(re.escape(w) for w in sorted(words, key=len, reverse=True))
    match = re.search(r"(?<![\w.,/:])(\d{1,4})\s+(?:" + alternation + r")(?!\w)", text, re.IGNORECASE)
    return int(match.group(1)) if match else None


def extract_parameters(
    text: str,
    language: Language,
    resource: Resource,
    operation: Operation,
    now: datetime,
) -> Dict[str, Any]:
    """Pull dates, money, email, ids, status, priority, count and title out of text.

    Unquoted titles are only inferred when creating or searching; an update
    or delete never renames a record from leftover words.
    """
    params: Dict[str, Any] = {}

    when = parse_human_date(text, now)
    if when:
        params["due_date"] = when
        params["start_at"] = when

    money = parse_money(text)
    if money:
        params.update(money)

    email = EMAIL_RE.search(text)
    if email:
        params["email"] = email.group(0)

    ids = UUID_RE.findall(text)
    if ids:
        params["id"] = ids[0]
        if len(ids) > 1:
            params["ids"] = ids
            params["count"] = len(ids)

    status = _match_keyword_table(text, STATUS_KEYWORDS[language])
    if status:
        params["status"] = status

    priority = _match_keyword_table(text, PRIORITY_KEYWORDS[language])
    if priority:
        params["priority"] = priority

    if "count" not in params:
        count = _extract_count(text, language)
        if count is not None:
            params["count"] = count

    if re.search(CONFIRM_ALL_WORDS, text, re.IGNORECASE):
        params["scope"] = "all"

    quoted = QUOTED_RE.search(text)
    if quoted:
        params["title"] = next(g for g in quoted.groups() if g is not None)
    elif operation in (Operation.CREATE, Operation.LIST):
        title = infer_title(text, language)
        if title:
            params["title"] = title

    if resource == Resource.CLIENT and "title" in params:
        params.setdefault("name", params["title"])

    return params


def _apply_list_filters(params: Dict[str, Any], text: str, language: Language) -> None:
    """On a listing, a date expression selects a bucket instead of setting a due date."""
    date_range = _match_keyword_table(text, DATE_RANGE_KEYWORDS[language])
    if date_range:
        params["date_range"] = date_range
        params.pop("due_date", None)
        params.pop("start_at", None)


# ============================================================================
# Entry points
# ============================================================================

def _parse_slash_command(text: str, language: Language, now: datetime) -> Intent:
    parts = text.split()
    command = parts[0][1:].lower()
    remainder = parts[1:]

    if command in ("help", "aide"):
        return Intent(
            operation=Operation.READ,
            resource=Resource.TASK,
            parameters={"help": True},
            raw_input=text,
            language=language,
        )

    if "create" in command or "add" in command:
        operation = Operation.CREATE
    elif "update" in command or "edit" in command:
        operation = Operation.UPDATE
    elif "delete" in command or "remove" in command:
        operation = Operation.DELETE
    elif "list" in command:
        operation = Operation.LIST
    else:
        operation = Operation.READ

    resource = None
    for candidate, stems in SLASH_RESOURCES:
        if any(stem in command for stem in stems):
            resource = candidate
            break

    if resource is None and remainder:
        first = remainder[0].lower().strip(PUNCTUATION)
        for table in RESOURCE_KEYWORDS.values():
            for candidate, keywords in table.items():
                if first in keywords:
                    resource = candidate
                    break
            if resource:
                break
        if resource:
            remainder = remainder[1:]
    resource = resource or Resource.TASK

    params = extract_parameters(text, language, resource, operation, now)

    # "/delete order 123": a bare identifier right after the resource word
    if operation in (Operation.READ, Operation.UPDATE, Operation.DELETE) and "id" not in params and remainder:
        token = remainder[0].strip(PUNCTUATION)
        if IDENTIFIER_RE.match(token) and any(c.isdigit() for c in token):
            params["id"] = token

    # "/addclient Acme": keywords fused into the command leave no title anchor
    if operation == Operation.CREATE and "title" not in params and remainder:
        title = _title_from_words(remainder)
        if title:
            params["title"] = title
            if resource == Resource.CLIENT:
                params.setdefault("name", title)

    if operation == Operation.LIST:
        _apply_list_filters(params, text, language)

    return Intent(
        operation=operation,
        resource=resource,
        parameters=params,
        confirm_required=operation == Operation.DELETE,
        raw_input=text,
        language=language,
    )


def _parse_natural_language(text: str, language: Language, now: datetime) -> Intent:
    operation_hit = _earliest_match(text, OPERATION_KEYWORDS[language])
    resource_hit = _earliest_match(text, RESOURCE_KEYWORDS[language])

    operation = operation_hit[0] if operation_hit else Operation.READ
    resource = resource_hit[0] if resource_hit else Resource.TASK

    params = extract_parameters(text, language, resource, operation, now)

    # "Show pending orders": reading a plural without an id is a listing
    if (
        operation == Operation.READ
        and "id" not in params
        and resource_hit
        and resource_hit[1].group(0).lower() in PLURAL_RESOURCE_WORDS
    ):
        operation = Operation.LIST

    if operation == Operation.LIST:
        _apply_list_filters(params, text, language)

    return Intent(
        operation=operation,
        resource=resource,
        parameters=params,
        confirm_required=operation == Operation.DELETE and params.get("scope") == "all",
        raw_input=text,
        language=language,
    )


def parse_intent(text: str, now: Optional[datetime] = None) -> Intent:
    """Parse a user message into an Intent. Never raises."""
    now = now or datetime.now(timezone.utc)
    stripped = (text or "").strip()
    language = detect_language(stripped)

    if not stripped:
        return Intent(operation=Operation.READ, resource=Resource.TASK, raw_input="", language=language)

    if stripped.startswith("/"):
        intent = _parse_slash_command(stripped, language, now)
    else:
        intent = _parse_natural_language(stripped, language, now)

    logger.debug(f"Parsed intent {intent.describe()} lang={language.value} params={sorted(intent.parameters)}")
    return intent
