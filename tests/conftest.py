"""pytest配置文件"""

import pytest

from helpers import FakeFetcher


@pytest.fixture
def fake_fetcher():
    """空的传输替身"""
    return FakeFetcher()


@pytest.fixture
def game_root(tmp_path):
    """安装根目录"""
    root = tmp_path / "game"
    root.mkdir()
    return root
