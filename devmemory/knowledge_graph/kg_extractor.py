"""
知识图谱实体提取器

从记录的标题和正文中识别实体：
1. 按 kg_patterns.ENTITY_PATTERNS 声明式规则表逐条匹配
2. 清洗、校验候选名称（不通过的直接丢弃）
3. 根据上下文计算置信度
4. 同一次提取内按 (类型, 小写名称) 去重
5. 按类型最低置信度过滤

提取是纯规则的，不访问存储；写入由 KnowledgeGraphManager 负责。
"""

from __future__ import annotations

import re
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from devmemory.core.config_manager import ConfigManager, get_config_manager
from devmemory.knowledge_graph.kg_errors import ExtractionError
from devmemory.knowledge_graph.kg_models import Entity, EntityType, entity_key
from devmemory.knowledge_graph.kg_patterns import (
    CAPITALIZED_TYPES,
    ENTITY_PATTERNS,
    METADATA_HINT_KEYS,
    RECORD_KIND_RELEVANCE,
    TRIGGER_PATTERNS,
    EntityPattern,
    clean_common,
    clean_name,
    compile_custom_patterns,
    name_regex,
)
from devmemory.models.record import Record
from devmemory.utils.logger import get_logger

logger = get_logger("kg_extractor")

# 观察记录中截取的上下文长度（每侧字符数）
_SNIPPET_RADIUS = 40
_SPACES_RE = re.compile(r"\s+")


@dataclass
class ExtractionSettings:
    """一次提取使用的参数快照"""
    base_confidence: float
    max_confidence: float
    trigger_bonus: float
    trigger_window: int
    title_bonus: float
    repeat_bonus: float
    repeat_bonus_cap: float
    record_kind_bonus: float
    metadata_hint_bonus: float
    tag_hint_bonus: float
    capitalization_bonus: float
    min_confidence: Dict[str, float]
    max_text_length: int
    time_budget_seconds: float

    @classmethod
    def from_config(cls, cfg: ConfigManager) -> "ExtractionSettings":
        return cls(
            base_confidence=cfg.get("extraction.base_confidence"),
            max_confidence=cfg.get("extraction.max_confidence"),
            trigger_bonus=cfg.get("extraction.trigger_bonus"),
            trigger_window=cfg.get("extraction.trigger_window"),
            title_bonus=cfg.get("extraction.title_bonus"),
            repeat_bonus=cfg.get("extraction.repeat_bonus"),
            repeat_bonus_cap=cfg.get("extraction.repeat_bonus_cap"),
            record_kind_bonus=cfg.get("extraction.record_kind_bonus"),
            metadata_hint_bonus=cfg.get("extraction.metadata_hint_bonus"),
            tag_hint_bonus=cfg.get("extraction.tag_hint_bonus"),
            capitalization_bonus=cfg.get("extraction.capitalization_bonus"),
            min_confidence=cfg.get("extraction.min_confidence"),
            max_text_length=cfg.get("extraction.max_text_length"),
            time_budget_seconds=cfg.get("extraction.time_budget_seconds"),
        )

    def min_confidence_for(self, entity_type: EntityType) -> float:
        return self.min_confidence.get(
            entity_type.value, self.min_confidence.get("default", 0.5)
        )


class EntityExtractor:
    """基于规则表的实体提取器"""

    def __init__(
        self,
        patterns: Optional[List[EntityPattern]] = None,
        config: Optional[ConfigManager] = None,
    ) -> None:
        self._patterns = list(patterns) if patterns is not None else list(ENTITY_PATTERNS)
        self._config = config
        self._custom_cache: Tuple[Optional[str], List[EntityPattern]] = (None, [])

    @property
    def config(self) -> ConfigManager:
        return self._config or get_config_manager()

    def extract(self, record: Record) -> List[Entity]:
        """从记录中提取候选实体

        单条规则出错只记录警告并跳过；超过时间预算时停止并返回已有结果。
        不会抛出异常。
        """
        settings = ExtractionSettings.from_config(self.config)

        text = record.text
        if len(text) > settings.max_text_length:
            logger.debug(
                f"Record {record.id} truncated for extraction: "
                f"{len(text)} -> {settings.max_text_length} chars"
            )
            text = text[:settings.max_text_length]
        body = text[len(record.title) + 1:]

        candidates: Dict[Tuple[str, str], Entity] = {}
        deadline = time.monotonic() + settings.time_budget_seconds

        for pattern in self._patterns + self._custom_patterns():
            if time.monotonic() > deadline:
                logger.warning(
                    f"Extraction time budget exceeded for record {record.id}, "
                    f"stopped before pattern '{pattern.label}'"
                )
                break
            try:
                self._apply_pattern(pattern, record, text, body, settings, candidates)
            except Exception as e:
                err = ExtractionError(pattern.label, str(e))
                logger.warning(f"Entity pattern skipped: {err}")

        results = [
            entity for entity in candidates.values()
            if entity.confidence >= settings.min_confidence_for(entity.entity_type)
        ]
        logger.debug(
            f"Extracted {len(results)} entities from record {record.id} "
            f"({len(candidates)} candidates)"
        )
        return results

    # ================================================================
    # 规则匹配
    # ================================================================

    def _apply_pattern(
        self,
        pattern: EntityPattern,
        record: Record,
        text: str,
        body: str,
        settings: ExtractionSettings,
        candidates: Dict[Tuple[str, str], Entity],
    ) -> None:
        for match in pattern.regex.finditer(text):
            raw = pattern.extract_name(match)
            name = pattern.clean(raw)
            if not name or not pattern.validate(name):
                continue

            surface = clean_common(raw)
            confidence = self._score(
                pattern, name, surface, match, record, text, body, settings
            )
            observation = self._observation(record, text, match.start(), match.end())

            key = entity_key(name, pattern.entity_type)
            existing = candidates.get(key)
            if existing is not None:
                existing.confidence = max(existing.confidence, confidence)
                existing.add_observation(observation)
                existing.properties["mention_count"] = existing.properties.get("mention_count", 1) + 1
                continue

            candidates[key] = Entity(
                name=name,
                entity_type=pattern.entity_type,
                properties={
                    "extraction_method": "pattern",
                    "pattern": pattern.label,
                    "record_kind": record.kind.value,
                    "mention_count": 1,
                },
                observations=[observation],
                confidence=confidence,
                source_record_ids=[record.id],
            )

    def _custom_patterns(self) -> List[EntityPattern]:
        """用户配置的自定义模式（配置不变时复用编译结果）"""
        custom = self.config.get("extraction.custom_patterns") or {}
        signature = repr(sorted(custom.items())) if custom else None
        cached_sig, cached = self._custom_cache
        if signature == cached_sig:
            return cached

        def _on_error(type_name: str, raw: str, exc: Exception) -> None:
            logger.warning(f"Invalid custom pattern skipped: type={type_name}, pattern={raw!r}: {exc}")

        compiled = compile_custom_patterns(custom, _on_error) if custom else []
        self._custom_cache = (signature, compiled)
        return compiled

    # ================================================================
    # 置信度评分
    # ================================================================

    def _score(
        self,
        pattern: EntityPattern,
        name: str,
        surface: str,
        match: "re.Match[str]",
        record: Record,
        text: str,
        body: str,
        settings: ExtractionSettings,
    ) -> float:
        """按上下文证据累加置信度，上限 max_confidence"""
        entity_type = pattern.entity_type
        score = settings.base_confidence + pattern.bonus

        # 上下文触发词（不含匹配本身）
        start, end = match.span()
        w = settings.trigger_window
        window = text[max(0, start - w):start] + " " + text[end:end + w]
        triggers = {m.group(1).lower() for m in TRIGGER_PATTERNS[entity_type].finditer(window)}
        score += settings.trigger_bonus * len(triggers)

        needles = [name_regex(name)]
        if surface and surface.lower() != name.lower():
            needles.append(name_regex(surface))

        if record.title and any(n.search(record.title) for n in needles):
            score += settings.title_bonus

        occurrences = max(len(n.findall(body)) for n in needles)
        if occurrences > 1:
            score += min((occurrences - 1) * settings.repeat_bonus, settings.repeat_bonus_cap)

        if entity_type in RECORD_KIND_RELEVANCE.get(record.kind, ()):
            score += settings.record_kind_bonus

        if self._matches_metadata(entity_type, name, record):
            score += settings.metadata_hint_bonus

        lowered = name.lower()
        if any(str(tag).strip().lstrip("#").lower() == lowered for tag in record.tags):
            score += settings.tag_hint_bonus

        if entity_type in CAPITALIZED_TYPES and name[:1].isupper():
            score += settings.capitalization_bonus

        return round(min(max(score, 0.0), settings.max_confidence), 4)

    @staticmethod
    def _matches_metadata(entity_type: EntityType, name: str, record: Record) -> bool:
        lowered = name.lower()
        for key in METADATA_HINT_KEYS.get(entity_type, []):
            hint = record.hint(key)
            if hint is None:
                continue
            if entity_type == EntityType.SITE:
                if lowered in hint.lower():
                    return True
                continue
            if clean_name(entity_type, hint).lower() == lowered:
                return True
        return False

    @staticmethod
    def _observation(record: Record, text: str, start: int, end: int) -> str:
        """生成可读的提及描述"""
        lo = max(0, start - _SNIPPET_RADIUS)
        hi = min(len(text), end + _SNIPPET_RADIUS)
        snippet = _SPACES_RE.sub(" ", text[lo:hi]).strip()
        prefix = "..." if lo > 0 else ""
        suffix = "..." if hi < len(text) else ""
        where = f'"{record.title}"' if record.title else f"record {record.id}"
        return f'Mentioned in {where}: "{prefix}{snippet}{suffix}"'
