"""
记录模型测试
"""

from devmemory.models.record import Record, RecordKind


class TestRecordKind:

    def test_parse_known(self):
        assert RecordKind.parse("meeting_notes") is RecordKind.MEETING_NOTES
        assert RecordKind.parse(" Decision ") is RecordKind.DECISION

    def test_parse_unknown_falls_back_to_note(self):
        assert RecordKind.parse("something-else") is RecordKind.NOTE
        assert RecordKind.parse(None) is RecordKind.NOTE


class TestRecord:

    def test_text_joins_title_and_content(self):
        r = Record(id="1", title="T", content="body")
        assert r.text == "T\nbody"

    def test_hint_skips_empty(self):
        r = Record(id="1", metadata={"language": "Python", "framework": ""})
        assert r.hint("language") == "Python"
        assert r.hint("framework") is None
        assert r.hint("missing") is None

    def test_from_dict_accepts_type_and_camel_case(self):
        r = Record.from_dict({
            "id": 42,
            "title": "Deploy",
            "content": "kubectl apply",
            "type": "kubernetes_resource",
            "tags": ["k8s"],
            "metadata": {"filePath": "deploy.yaml", "kubernetesNamespace": "prod"},
        })
        assert r.id == "42"
        assert r.kind is RecordKind.KUBERNETES_RESOURCE
        assert r.metadata["file_path"] == "deploy.yaml"
        assert r.metadata["kubernetes_namespace"] == "prod"
        assert r.tags == ["k8s"]

    def test_from_dict_defaults(self):
        r = Record.from_dict({"id": "x"})
        assert r.title == ""
        assert r.content == ""
        assert r.kind is RecordKind.NOTE

    def test_from_dict_coerces_tags_to_str(self):
        r = Record.from_dict({"id": "x", "tags": [2024, "react", None]})
        assert r.tags == ["2024", "react"]
