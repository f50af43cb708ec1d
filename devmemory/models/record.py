"""
记录（记忆）数据模型

知识图谱只读取记录，不修改记录；记录的增删改由上层存储负责。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class RecordKind(str, Enum):
    """记录类型"""
    CODE_SNIPPET = "code_snippet"
    DOCUMENTATION = "documentation"
    MEETING_NOTES = "meeting_notes"
    DECISION = "decision"
    API_CALL = "api_call"
    DEBUG_SESSION = "debug_session"
    PROJECT_CONTEXT = "project_context"
    KUBERNETES_RESOURCE = "kubernetes_resource"
    COMMAND = "command"
    LINK = "link"
    NOTE = "note"

    @classmethod
    def parse(cls, value: Any) -> "RecordKind":
        """宽松解析，未知值归为 NOTE"""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.NOTE


# camelCase 元数据键 → 内部键
_METADATA_KEY_ALIASES = {
    "filePath": "file_path",
    "kubernetesNamespace": "kubernetes_namespace",
    "kubernetesKind": "kubernetes_kind",
}


@dataclass
class Record:
    """一条开发者记忆"""
    id: str
    title: str = ""
    content: str = ""
    kind: RecordKind = RecordKind.NOTE
    tags: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def text(self) -> str:
        """提取用文本：标题 + 正文"""
        return f"{self.title}\n{self.content}"

    def hint(self, key: str) -> Optional[str]:
        """读取结构化元数据提示，空值返回 None"""
        value = self.metadata.get(key)
        if value is None or value == "":
            return None
        return str(value)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Record":
        """从外部字典构建（兼容 camelCase 键和 ``type`` 字段）"""
        metadata = {}
        for key, value in (data.get("metadata") or {}).items():
            metadata[_METADATA_KEY_ALIASES.get(key, key)] = value
        return cls(
            id=str(data["id"]),
            title=data.get("title") or "",
            content=data.get("content") or "",
            kind=RecordKind.parse(data.get("kind") or data.get("type") or "note"),
            tags=[str(t) for t in data.get("tags") or [] if t is not None],
            metadata=metadata,
        )
