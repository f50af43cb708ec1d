"""
pytest测试配置文件

为所有测试提供基础fixtures，统一配置管理器初始化。
"""

import pytest

from devmemory.core.test_utils import setup_test_config, reset_config_manager
from devmemory.models.record import Record, RecordKind


@pytest.fixture(autouse=True, scope="function")
def setup_test_environment():
    """自动为每个测试设置基础环境"""
    setup_test_config({
        'log': {
            'level': 'DEBUG',
        },
    })

    yield

    reset_config_manager()


@pytest.fixture
def hooks_record():
    """React Hooks 指南记录"""
    return Record(
        id="rec-hooks",
        title="React Hooks Guide",
        content="useState and useEffect are used by the frontend project built with React",
        kind=RecordKind.DOCUMENTATION,
        tags=["react", "hooks"],
    )


@pytest.fixture
def payment_record():
    """支付服务记录"""
    return Record(
        id="rec-payment",
        title="",
        content="John Doe created the payment-service API",
        kind=RecordKind.NOTE,
    )
