"""
实体识别规则表

所有实体类型的识别规则集中在一张声明式表里：
每条 EntityPattern 描述 (实体类型, 正则, 捕获组, 清洗规则, 校验规则)，
由 EntityExtractor 用同一个循环处理，不为每种类型单独写分支。

除了正则表，这里还有：
- 已知技术/数据库/组织/概念词典（含规范写法）
- 按实体类型的清洗、校验函数
- 置信度评分用到的上下文触发词、记录类型相关性表
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional, Pattern

from devmemory.knowledge_graph.kg_models import EntityType
from devmemory.models.record import RecordKind


# ── 词典 ──

# 大小写不敏感的技术名称（小写 → 规范写法）
KNOWN_TECHNOLOGIES: Dict[str, str] = {
    name.lower(): name for name in [
        "React", "React Native", "Vue", "Vue.js", "Angular", "Svelte", "Next.js", "Nuxt",
        "Node.js", "Django", "Flask", "FastAPI", "Spring Boot", "Ruby on Rails", "Laravel",
        "TypeScript", "JavaScript", "Python", "Kotlin", "Golang", "C++", "C#", "PHP",
        "Scala", "Elixir", "Haskell", "Docker", "Kubernetes", "Terraform", "Ansible",
        "Jenkins", "GitHub Actions", "GitLab CI", "AWS", "Azure", "GCP", "Kafka",
        "RabbitMQ", "GraphQL", "gRPC", "Webpack", "Pytest", "Mocha", "Cypress",
        "Redux", "Tailwind", "Bootstrap", "jQuery", "TensorFlow", "PyTorch", "NumPy",
        "Pandas", "Nginx", "Linux", "npm", "Yarn", "Prometheus", "Grafana", "Istio",
        ".NET", "Celery", "SQLAlchemy", "Prisma", "Electron", "OpenTelemetry",
    ]
}

# 容易与普通英文单词混淆，只按原始大小写匹配
CASE_SENSITIVE_TECHNOLOGIES: FrozenSet[str] = frozenset([
    "Go", "Rust", "Swift", "Express", "Spring", "Git", "Helm", "Jest", "Vite",
    "Babel", "Ruby", "Rails", "Java", "Dart", "Deno", "Bun",
])

# 别名归一（小写 → 规范写法）
TECHNOLOGY_ALIASES: Dict[str, str] = {
    "reactjs": "React",
    "react.js": "React",
    "vuejs": "Vue.js",
    "nodejs": "Node.js",
    "node": "Node.js",
    "golang": "Go",
    "k8s": "Kubernetes",
    "ts": "TypeScript",
    "js": "JavaScript",
    "tailwindcss": "Tailwind",
}

KNOWN_DATABASES: Dict[str, str] = {
    name.lower(): name for name in [
        "PostgreSQL", "MySQL", "MariaDB", "MongoDB", "Redis", "SQLite", "Elasticsearch",
        "Cassandra", "DynamoDB", "Neo4j", "CouchDB", "InfluxDB", "Memcached",
        "Firestore", "Snowflake", "BigQuery", "ClickHouse", "CockroachDB", "SQL Server",
        "OpenSearch", "Qdrant", "Pinecone",
    ]
}
DATABASE_ALIASES: Dict[str, str] = {
    "postgres": "PostgreSQL",
    "psql": "PostgreSQL",
    "mongo": "MongoDB",
    "mssql": "SQL Server",
}

KNOWN_ORGANIZATIONS: FrozenSet[str] = frozenset([
    "Google", "Microsoft", "Amazon", "Meta", "Facebook", "Apple", "Netflix", "GitHub",
    "GitLab", "Atlassian", "Stripe", "Shopify", "Uber", "Airbnb", "IBM", "Oracle",
    "Red Hat", "HashiCorp", "Mozilla", "OpenAI", "Anthropic", "Salesforce", "Vercel",
    "Cloudflare", "JetBrains", "Twilio", "Datadog",
])

KNOWN_CONCEPTS: FrozenSet[str] = frozenset([
    "hooks", "caching", "authentication", "authorization", "microservices",
    "dependency injection", "state management", "rate limiting", "pagination",
    "CI/CD", "observability", "monitoring", "refactoring", "memoization",
    "concurrency", "event sourcing", "CQRS", "load balancing", "sharding",
    "replication", "serverless", "OAuth", "server-side rendering", "feature flags",
    "code review", "unit testing", "integration testing", "continuous integration",
    "continuous deployment", "domain-driven design", "message queue", "garbage collection",
])

STOPWORDS: FrozenSet[str] = frozenset([
    "the", "a", "an", "this", "that", "these", "those", "it", "its", "we", "our", "us",
    "you", "your", "they", "their", "he", "she", "his", "her", "i", "me", "my",
    "and", "or", "but", "if", "then", "else", "when", "where", "what", "which", "who",
    "how", "why", "is", "are", "was", "were", "be", "been", "all", "any", "some",
    "each", "every", "no", "not", "yes", "here", "there", "now", "today", "yesterday",
    "tomorrow", "monday", "tuesday", "wednesday", "thursday", "friday", "saturday",
    "sunday", "january", "february", "march", "april", "may", "june", "july",
    "august", "september", "october", "november", "december", "note", "notes",
    "todo", "one", "two", "first", "last", "next", "other", "same", "more", "most",
    "also", "just", "only", "very", "with", "for", "from", "into", "about", "after",
    "before", "over", "under", "hello", "hi", "thanks", "please", "team", "guide",
    "someone", "everyone", "nobody", "whole", "entire", "another", "such", "so",
])

# 数据库/服务/项目名称中常见的泛化修饰词
GENERIC_QUALIFIERS: FrozenSet[str] = frozenset([
    "production", "prod", "staging", "stage", "local", "main", "primary", "secondary",
    "test", "testing", "dev", "development", "rest", "public", "private", "new", "old",
    "internal", "external", "default", "shared", "remote", "legacy", "web", "sample",
])

PERSON_ROLE_WORDS: FrozenSet[str] = frozenset([
    "developer", "engineer", "lead", "manager", "architect", "designer",
])

FILE_EXTENSIONS: FrozenSet[str] = frozenset([
    "ts", "tsx", "js", "jsx", "mjs", "py", "java", "go", "rs", "rb", "php", "cs", "cpp",
    "c", "h", "hpp", "swift", "kt", "scala", "sh", "yaml", "yml", "json", "toml", "xml",
    "html", "css", "scss", "md", "sql", "proto", "tf", "ini", "cfg", "env", "lock",
    "gradle", "vue", "svelte", "txt", "csv", "conf",
])
_FILE_EXT_ALT = "|".join(sorted(FILE_EXTENSIONS, key=len, reverse=True))

DOCUMENT_EXTENSIONS: FrozenSet[str] = frozenset([
    "pdf", "doc", "docx", "xls", "xlsx", "ppt", "pptx", "odt", "rtf", "pages", "key",
])
_DOC_EXT_ALT = "|".join(sorted(DOCUMENT_EXTENSIONS, key=len, reverse=True))

_REPO_HOSTS = r"(?:github\.com|gitlab\.com|bitbucket\.org)"


def _alternation(names: Iterable[str]) -> str:
    """按长度降序拼接正则分支（长名称优先，避免 Vue 抢先匹配 Vue.js）"""
    return "|".join(re.escape(n) for n in sorted(set(names), key=len, reverse=True))


def _bounded(body: str) -> str:
    """给名称正则加上词边界（兼容 C++ / .NET / Node.js 这类名称）"""
    return rf"(?<![\w.@/-])({body})(?![\w+#-])"


# ── 上下文触发词 ──

TRIGGER_WORDS: Dict[EntityType, List[str]] = {
    EntityType.PERSON: [
        "created", "wrote", "author", "authored", "developer", "engineer", "reviewed",
        "assigned", "owner", "lead", "by", "said", "mentioned", "maintainer",
        "contributor", "colleague", "teammate",
    ],
    EntityType.PROJECT: [
        "project", "repo", "repository", "app", "application", "codebase", "product",
        "initiative", "module", "built",
    ],
    EntityType.TECHNOLOGY: [
        "framework", "library", "language", "using", "uses", "used", "built with",
        "powered by", "written in", "version", "install", "npm", "pip", "dependency",
        "stack", "sdk", "runtime",
    ],
    EntityType.CONCEPT: [
        "pattern", "concept", "approach", "technique", "principle", "architecture",
        "strategy", "implement", "implementation", "guide", "best practice",
    ],
    EntityType.ORGANIZATION: [
        "company", "org", "organization", "team", "inc", "corp", "vendor", "client",
        "customer", "partner", "works at", "joined",
    ],
    EntityType.FILE: [
        "file", "path", "directory", "folder", "import", "edit", "edited", "line",
        "module", "config", "open", "changed",
    ],
    EntityType.REPOSITORY: [
        "repo", "repository", "clone", "fork", "pull request", "pr", "commit",
        "branch", "merge",
    ],
    EntityType.API: [
        "api", "endpoint", "request", "response", "route", "rest", "graphql", "http",
        "call", "calls", "payload",
    ],
    EntityType.DATABASE: [
        "database", "db", "query", "table", "schema", "sql", "cache", "caching",
        "store", "index", "migration", "collection",
    ],
    EntityType.SERVICE: [
        "service", "microservice", "deploy", "deployed", "deployment", "api", "cluster",
        "pod", "container", "worker", "instance", "server",
    ],
    EntityType.LOCATION: [
        "office", "city", "based", "located", "region", "headquarters", "remote",
    ],
    EntityType.SITE: [
        "site", "sharepoint", "wiki", "page", "portal", "intranet", "confluence",
    ],
    EntityType.DOCUMENT: [
        "document", "doc", "docs", "spec", "pdf", "report", "slides", "attached",
        "read", "draft", "proposal",
    ],
}

TRIGGER_PATTERNS: Dict[EntityType, Pattern[str]] = {
    etype: re.compile(r"\b(" + _alternation(words) + r")\b", re.IGNORECASE)
    for etype, words in TRIGGER_WORDS.items()
}

# 记录类型 → 与之相关的实体类型
RECORD_KIND_RELEVANCE: Dict[RecordKind, FrozenSet[EntityType]] = {
    RecordKind.CODE_SNIPPET: frozenset([
        EntityType.TECHNOLOGY, EntityType.FILE, EntityType.API, EntityType.CONCEPT,
    ]),
    RecordKind.DOCUMENTATION: frozenset([
        EntityType.TECHNOLOGY, EntityType.CONCEPT, EntityType.DOCUMENT,
        EntityType.PROJECT, EntityType.API,
    ]),
    RecordKind.MEETING_NOTES: frozenset([
        EntityType.PERSON, EntityType.PROJECT, EntityType.ORGANIZATION, EntityType.DOCUMENT,
    ]),
    RecordKind.DECISION: frozenset([
        EntityType.TECHNOLOGY, EntityType.CONCEPT, EntityType.PROJECT, EntityType.PERSON,
    ]),
    RecordKind.API_CALL: frozenset([
        EntityType.API, EntityType.SERVICE, EntityType.TECHNOLOGY,
    ]),
    RecordKind.DEBUG_SESSION: frozenset([
        EntityType.FILE, EntityType.TECHNOLOGY, EntityType.SERVICE, EntityType.DATABASE,
    ]),
    RecordKind.PROJECT_CONTEXT: frozenset([
        EntityType.PROJECT, EntityType.REPOSITORY, EntityType.TECHNOLOGY,
        EntityType.PERSON, EntityType.ORGANIZATION,
    ]),
    RecordKind.KUBERNETES_RESOURCE: frozenset([
        EntityType.SERVICE, EntityType.TECHNOLOGY, EntityType.DATABASE,
    ]),
    RecordKind.COMMAND: frozenset([
        EntityType.TECHNOLOGY, EntityType.FILE, EntityType.SERVICE,
    ]),
    RecordKind.LINK: frozenset([
        EntityType.SITE, EntityType.DOCUMENT, EntityType.REPOSITORY, EntityType.ORGANIZATION,
    ]),
    RecordKind.NOTE: frozenset(),
}

# 元数据键 → 该键能佐证的实体类型
METADATA_HINT_KEYS: Dict[EntityType, List[str]] = {
    EntityType.TECHNOLOGY: ["language", "framework"],
    EntityType.PROJECT: ["project"],
    EntityType.REPOSITORY: ["repository"],
    EntityType.FILE: ["file_path"],
    EntityType.PERSON: ["author"],
    EntityType.SITE: ["url"],
}

# 首字母大写时额外加分的类型
CAPITALIZED_TYPES: FrozenSet[EntityType] = frozenset([
    EntityType.PERSON, EntityType.ORGANIZATION, EntityType.TECHNOLOGY,
])


# ================================================================
# 清洗规则
# ================================================================

_DISALLOWED_CHARS_RE = re.compile(r"[^\w\s./@#+:{}-]")
_WHITESPACE_RE = re.compile(r"\s+")
_TRAILING_PUNCT = ".,:;-/"


def clean_common(name: str) -> str:
    """通用清洗：压缩空白、去掉非法字符、去掉首尾标点"""
    name = _DISALLOWED_CHARS_RE.sub("", name)
    name = _WHITESPACE_RE.sub(" ", name).strip()
    return name.rstrip(_TRAILING_PUNCT).strip()


def canonical_technology(name: str) -> str:
    lowered = name.lower()
    if lowered in TECHNOLOGY_ALIASES:
        return TECHNOLOGY_ALIASES[lowered]
    if lowered in KNOWN_TECHNOLOGIES:
        return KNOWN_TECHNOLOGIES[lowered]
    for known in CASE_SENSITIVE_TECHNOLOGIES:
        if known.lower() == lowered:
            return known
    return name


def canonical_database(name: str) -> str:
    lowered = name.lower()
    if lowered in DATABASE_ALIASES:
        return DATABASE_ALIASES[lowered]
    return KNOWN_DATABASES.get(lowered, name)


_TECH_SUFFIX_RE = re.compile(r"\s+(?:framework|library|lib|sdk|toolkit)$", re.IGNORECASE)
_LEADING_THE_RE = re.compile(r"^the\s+", re.IGNORECASE)


def _clean_technology(name: str) -> str:
    name = _LEADING_THE_RE.sub("", _TECH_SUFFIX_RE.sub("", name))
    return canonical_technology(name.strip())


def _clean_person(name: str) -> str:
    name = name.lstrip("@")
    words = name.split(" ")
    while words and words[-1].lower() in PERSON_ROLE_WORDS:
        words.pop()
    # 句首词（Then / Yesterday）或职位前缀
    while words and (
        words[0].lower() in STOPWORDS
        or words[0].lower() in PERSON_ROLE_WORDS | {"senior", "staff", "principal"}
    ):
        words.pop(0)
    return " ".join(words).strip()


_REPO_PREFIX_RE = re.compile(
    rf"^(?:(?:https?|ssh|git)://)?(?:git@)?(?:www\.)?{_REPO_HOSTS}[/:]", re.IGNORECASE
)


def _clean_repository(name: str) -> str:
    name = _REPO_PREFIX_RE.sub("", name)
    if name.endswith(".git"):
        name = name[:-4]
    return name.strip("/")


def _clean_file(name: str) -> str:
    while name[:2] == "./":
        name = name[2:]
    return name.lstrip("/\\")


def _clean_database(name: str) -> str:
    name = re.sub(r"\s+(?:database|db)$", "", name, flags=re.IGNORECASE)
    return canonical_database(name.strip())


def _clean_service(name: str) -> str:
    return re.sub(r"\s+(?:service|microservice)$", "", name, flags=re.IGNORECASE).strip()


_NUMBERED_DOC_RE = re.compile(r"^(RFC|ADR)[ -]?(\d+)$", re.IGNORECASE)


def _clean_numbered_document(name: str) -> str:
    """RFC7231 / RFC-7231 → RFC 7231"""
    m = _NUMBERED_DOC_RE.match(name)
    return f"{m.group(1).upper()} {m.group(2)}" if m else name


CLEANERS: Dict[EntityType, Callable[[str], str]] = {
    EntityType.TECHNOLOGY: _clean_technology,
    EntityType.PERSON: _clean_person,
    EntityType.REPOSITORY: _clean_repository,
    EntityType.FILE: _clean_file,
    EntityType.DATABASE: _clean_database,
    EntityType.SERVICE: _clean_service,
}


def clean_name(entity_type: EntityType, raw: str) -> str:
    """通用清洗 + 类型清洗"""
    return _apply_cleaner(CLEANERS.get(entity_type), raw)


def _apply_cleaner(cleaner: Optional[Callable[[str], str]], raw: str) -> str:
    name = clean_common(raw)
    if cleaner is not None and name:
        name = clean_common(cleaner(name))
    return name


# ================================================================
# 校验规则
# ================================================================

_IDENTIFIER_RE = re.compile(r"^[A-Za-z][\w.-]*$")
_HAS_LETTER_RE = re.compile(r"[A-Za-z]")


def is_known_technology(name: str) -> bool:
    lowered = name.lower()
    return (
        lowered in KNOWN_TECHNOLOGIES
        or lowered in TECHNOLOGY_ALIASES
        or name in CASE_SENSITIVE_TECHNOLOGIES
    )


def _length_between(lo: int, hi: int) -> Callable[[str], bool]:
    return lambda name: lo <= len(name) <= hi


def _valid_file(name: str) -> bool:
    if is_known_technology(name):
        return False
    if "/" in name:
        return True
    ext = name.rsplit(".", 1)[-1].lower() if "." in name else ""
    return ext in FILE_EXTENSIONS or name in ("Dockerfile", "Makefile", "Jenkinsfile")


def _valid_identifier(name: str) -> bool:
    return bool(_IDENTIFIER_RE.match(name)) and name.lower() not in GENERIC_QUALIFIERS


def _valid_database(name: str) -> bool:
    return name.lower() in KNOWN_DATABASES or _valid_identifier(name)


def _valid_concept(name: str) -> bool:
    return 3 <= len(name) <= 50 and name.split(" ")[0].lower() not in STOPWORDS


def _valid_person(name: str) -> bool:
    if not _HAS_LETTER_RE.search(name) or len(name) > 50:
        return False
    if is_known_technology(name) or name in KNOWN_ORGANIZATIONS:
        return False
    if name.lower() in KNOWN_DATABASES:
        return False
    return all(word.lower() not in STOPWORDS for word in name.split(" "))


def _valid_repository(name: str) -> bool:
    return 3 <= len(name) <= 100 and "/" in name


def _valid_project(name: str) -> bool:
    return 2 <= len(name) <= 60 and name.lower() not in GENERIC_QUALIFIERS


VALIDATORS: Dict[EntityType, Callable[[str], bool]] = {
    EntityType.FILE: _valid_file,
    EntityType.DATABASE: _valid_database,
    EntityType.SERVICE: _valid_identifier,
    EntityType.PERSON: _valid_person,
    EntityType.API: lambda name: 2 <= len(name) <= 100 and name.lower() not in GENERIC_QUALIFIERS,
    EntityType.ORGANIZATION: _length_between(2, 60),
    EntityType.CONCEPT: _valid_concept,
    EntityType.REPOSITORY: _valid_repository,
    EntityType.PROJECT: _valid_project,
    EntityType.TECHNOLOGY: _length_between(1, 40),
}


def is_valid_name(entity_type: EntityType, name: str) -> bool:
    """通用校验 + 类型校验，不通过的候选直接丢弃"""
    return _apply_validator(VALIDATORS.get(entity_type), name)


def _apply_validator(validator: Optional[Callable[[str], bool]], name: str) -> bool:
    if len(name) < 2 or name.lower() in STOPWORDS:
        return False
    return validator(name) if validator is not None else True


# ================================================================
# 模式表
# ================================================================

@dataclass(frozen=True)
class EntityPattern:
    """一条实体识别规则"""
    entity_type: EntityType
    regex: Pattern[str]
    label: str
    group: int = 1                      # 捕获组；0 表示整个匹配
    bonus: float = 0.0                  # 规则本身的证据强度加分
    cleaner: Optional[Callable[[str], str]] = field(default=None, compare=False)
    validator: Optional[Callable[[str], bool]] = field(default=None, compare=False)

    def extract_name(self, match: "re.Match[str]") -> str:
        """取捕获组；捕获组为空时退回整个匹配"""
        raw = ""
        if self.group and self.regex.groups >= self.group:
            raw = match.group(self.group) or ""
        if not raw:
            raw = match.group(0)
        return raw

    def clean(self, raw: str) -> str:
        """通用清洗 + 本规则的清洗函数"""
        return _apply_cleaner(self.cleaner, raw)

    def validate(self, name: str) -> bool:
        """通用校验 + 本规则的校验函数"""
        return _apply_validator(self.validator, name)


def _p(
    entity_type: EntityType,
    pattern: str,
    label: str,
    group: int = 1,
    flags: int = 0,
    bonus: float = 0.0,
    cleaner: Optional[Callable[[str], str]] = None,
    validator: Optional[Callable[[str], bool]] = None,
) -> EntityPattern:
    """构造一行规则；未指定清洗/校验函数时使用该实体类型的默认函数"""
    return EntityPattern(
        entity_type=entity_type,
        regex=re.compile(pattern, flags),
        label=label,
        group=group,
        bonus=bonus,
        cleaner=cleaner or CLEANERS.get(entity_type),
        validator=validator or VALIDATORS.get(entity_type),
    )


_NAME_WORD = r"[A-Z][a-z]+"
_PERSON_NAME = rf"{_NAME_WORD}(?:[ ]{_NAME_WORD}){{0,2}}"
_FULL_NAME = rf"{_NAME_WORD}(?:[ ]{_NAME_WORD}){{1,2}}"
_PERSON_VERBS = (
    r"created|wrote|built|developed|implemented|designed|maintains|manages|leads|"
    r"reviewed|fixed|said|asked|owns|joined|approved|merged|deployed|works on|proposed"
)
_HTTP_VERBS = r"GET|POST|PUT|PATCH|DELETE|HEAD|OPTIONS"
_PATH_CHARS = r"[\w\-./{}:]"


ENTITY_PATTERNS: List[EntityPattern] = [
    # ── technology ──
    _p(EntityType.TECHNOLOGY, _bounded(_alternation(KNOWN_TECHNOLOGIES.values())),
       "known_technology", flags=re.IGNORECASE, bonus=0.1),
    _p(EntityType.TECHNOLOGY, _bounded(_alternation(CASE_SENSITIVE_TECHNOLOGIES)),
       "known_technology_cs", bonus=0.1),
    _p(EntityType.TECHNOLOGY,
       r"\b([A-Z][\w.+#-]*(?:[ ][A-Z][\w.+#-]*)?)[ ]+(?:framework|library|lib|SDK|toolkit)\b",
       "technology_framework"),
    _p(EntityType.TECHNOLOGY,
       r"\b(?:built with|powered by|written in|implemented in|developed (?:with|in)|migrated to)"
       r"[ ]+([A-Z][\w.+#-]*(?:[ ][A-Z][\w.+#-]*)?)",
       "technology_built_with"),

    # ── project ──
    _p(EntityType.PROJECT, r"\b([A-Za-z][\w.-]*)[ ]+project\b", "project_suffix"),
    _p(EntityType.PROJECT, r"\b[Pp]roject[ ]+([A-Z][\w.-]*)", "project_prefix"),
    _p(EntityType.PROJECT, r"\b[Pp]roject:[ ]*([A-Za-z][\w.-]*)", "project_label", bonus=0.1),

    # ── concept ──
    _p(EntityType.CONCEPT, _bounded(_alternation(KNOWN_CONCEPTS)), "known_concept",
       flags=re.IGNORECASE),
    _p(EntityType.CONCEPT, r"\b[A-Z][\w-]+(?:[ ][A-Z][\w-]+)?[ ]+pattern\b", "concept_pattern",
       group=0),

    # ── organization ──
    _p(EntityType.ORGANIZATION, _bounded(_alternation(KNOWN_ORGANIZATIONS)),
       "known_organization", bonus=0.1),
    _p(EntityType.ORGANIZATION,
       r"\b[A-Z][\w&-]*(?:[ ][A-Z][\w&-]*){0,3},?[ ]+(?:Inc|Corp|Corporation|Ltd|LLC|GmbH)\b",
       "organization_suffix", group=0),
    _p(EntityType.ORGANIZATION,
       r"\b(?:works at|working at|employed at|team at|contractor for)[ ]+([A-Z][\w&-]+(?:[ ][A-Z][\w&-]+)?)",
       "organization_works_at"),

    # ── file ──
    _p(EntityType.FILE,
       rf"(?<![\w/.@:-])((?:\.{{0,2}}/)?(?:[\w.-]+/)*[\w-]+(?:\.[\w-]+)*\.(?:{_FILE_EXT_ALT}))(?![\w/-])",
       "file_path", bonus=0.1),
    _p(EntityType.FILE, r"(?<![\w/.-])(Dockerfile|Makefile|Jenkinsfile)\b", "file_special",
       bonus=0.1),

    # ── repository ──
    _p(EntityType.REPOSITORY,
       rf"(?:https?://)?(?:www\.)?{_REPO_HOSTS}/([\w.-]+/[\w.-]+)",
       "repository_url", flags=re.IGNORECASE, bonus=0.1),
    _p(EntityType.REPOSITORY, rf"git@{_REPO_HOSTS}:([\w.-]+/[\w.-]+)", "repository_ssh",
       flags=re.IGNORECASE, bonus=0.1),
    _p(EntityType.REPOSITORY, r"\b(?:repo|repository)[ ]+([A-Za-z][\w.-]*/[\w.-]+)",
       "repository_named"),

    # ── api ──
    _p(EntityType.API, rf"(?:\b(?:{_HTTP_VERBS})[ ]+)?(/api/{_PATH_CHARS}*[\w}}])", "api_path",
       bonus=0.1),
    _p(EntityType.API, rf"\b(?:{_HTTP_VERBS})[ ]+(/(?!api/){_PATH_CHARS}*[\w}}])", "api_verb",
       bonus=0.1),
    _p(EntityType.API, r"\b([A-Za-z][\w.-]*)[ ]+(?:API|api|[Ee]ndpoints?)\b", "api_named"),

    # ── database ──
    _p(EntityType.DATABASE, _bounded(_alternation(KNOWN_DATABASES.values())), "known_database",
       flags=re.IGNORECASE),
    _p(EntityType.DATABASE, _bounded(_alternation(DATABASE_ALIASES)), "database_alias",
       flags=re.IGNORECASE),
    _p(EntityType.DATABASE, r"\b([A-Za-z][\w.-]*)[ ]+(?:database|DB|db)\b", "database_named"),

    # ── service ──
    _p(EntityType.SERVICE,
       r"(?<![\w./-])([a-z][a-z0-9]*(?:-[a-z0-9]+)*-(?:service|svc|worker|gateway|server|daemon))(?![\w-])",
       "service_hyphenated"),
    _p(EntityType.SERVICE, r"\b([A-Za-z][\w.-]*)[ ]+(?:service|microservice)\b", "service_named"),
    _p(EntityType.SERVICE, r"\b(?:service|svc|deployment|deploy)/([a-z0-9][\w.-]*)",
       "service_k8s_ref", bonus=0.1),

    # ── location ──
    _p(EntityType.LOCATION,
       r"\b(?:based in|located in|offices? in|headquartered in|moved to|relocated to)"
       r"[ ]+([A-Z][a-z]+(?:[ ][A-Z][a-z]+){0,2})",
       "location_phrase"),

    # ── site ──
    _p(EntityType.SITE, r"https?://[\w.-]+\.sharepoint\.com/sites/([\w.-]+)", "sharepoint_site",
       flags=re.IGNORECASE, bonus=0.1),
    _p(EntityType.SITE, r"/wiki/spaces/([A-Za-z0-9]+)", "confluence_space", bonus=0.1),
    _p(EntityType.SITE, r"\b(?:[Ww]iki|[Ss]ite|[Ss]pace)[ ]*:[ ]*([A-Z][\w-]+)", "site_label"),

    # ── person ──
    _p(EntityType.PERSON, rf"\b({_PERSON_NAME})[ ]+(?:{_PERSON_VERBS})\b", "person_verb"),
    _p(EntityType.PERSON, rf"\bby[ ]+({_PERSON_NAME})\b", "person_by"),
    _p(EntityType.PERSON, r"(?<![\w.])@([A-Za-z][\w-]{1,38})\b(?!/)", "person_mention", bonus=0.1),
    _p(EntityType.PERSON,
       rf"\b(?:senior[ ]+|lead[ ]+|staff[ ]+)?(?:developer|engineer|architect|designer|manager)[ ]+({_FULL_NAME})\b",
       "person_role_prefix"),
    _p(EntityType.PERSON,
       rf"\b({_FULL_NAME}),?[ ]+(?:our[ ]+|the[ ]+|a[ ]+)?(?:senior[ ]+|lead[ ]+|staff[ ]+)?"
       r"(?:developer|engineer|architect|designer|manager)\b",
       "person_role_suffix"),

    # ── document ──
    _p(EntityType.DOCUMENT, rf"(?<![\w/.-])([\w-]+(?:\.[\w-]+)*\.(?:{_DOC_EXT_ALT}))\b",
       "document_file", flags=re.IGNORECASE, bonus=0.1),
    _p(EntityType.DOCUMENT,
       r"\b(?:doc|document|spec|specification|RFC|ADR|design doc|runbook|proposal)[ ]+\"([^\"\n]{3,80})\"",
       "document_quoted", flags=re.IGNORECASE, bonus=0.1),
    _p(EntityType.DOCUMENT, r"\b(?:RFC|ADR)[ -]?\d{1,5}\b", "document_rfc", group=0, bonus=0.1,
       cleaner=_clean_numbered_document),
]


def compile_custom_patterns(
    custom: Dict[str, List[str]],
    on_error: Callable[[str, str, Exception], None],
) -> List[EntityPattern]:
    """编译用户自定义模式

    无法识别的实体类型或无法编译的正则交给 on_error 处理后跳过。
    """
    patterns: List[EntityPattern] = []
    for type_name, regexes in (custom or {}).items():
        try:
            entity_type = EntityType(str(type_name).lower())
        except ValueError as e:
            on_error(str(type_name), "", e)
            continue
        if isinstance(regexes, str):
            regexes = [regexes]
        for i, raw in enumerate(regexes or []):
            try:
                compiled = re.compile(raw)
            except (re.error, TypeError) as e:
                on_error(entity_type.value, str(raw), e)
                continue
            patterns.append(EntityPattern(
                entity_type=entity_type,
                regex=compiled,
                label=f"custom_{entity_type.value}_{i}",
                group=1 if compiled.groups else 0,
                cleaner=CLEANERS.get(entity_type),
                validator=VALIDATORS.get(entity_type),
            ))
    return patterns


def name_regex(name: str) -> Pattern[str]:
    """按完整词匹配名称（大小写不敏感）"""
    return re.compile(rf"(?<![\w-]){re.escape(name)}(?![\w-])", re.IGNORECASE)
