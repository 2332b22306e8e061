"""清单格式解析测试"""

import asyncio
import json
import zipfile

import pytest

from uranium.dialects import (
    CurseDialect,
    MinecraftDialect,
    ModrinthDialect,
    RuntimeDialect,
    get_dialect,
)
from uranium.dialects.curse import parse_loaders
from uranium.dialects.minecraft import asset_entries, rules_allow, version_entries
from uranium.dialects.modrinth import parse_index
from uranium.dialects.runtime import runtime_entries, runtime_root
from uranium.exceptions import APIError, ManifestParseError
from uranium.models import FileInfo, HashAlgorithm
from uranium.services.resolver import ManifestResolver

from helpers import remote_file, sha1, write_mrpack


class TestModrinthDialect:
    """测试 .mrpack 解析"""

    @pytest.mark.asyncio
    async def test_parse_with_overrides(self, tmp_path):
        """client-overrides 在 overrides 之后，按后出现者生效"""
        pack = write_mrpack(
            tmp_path / "p.mrpack",
            files=[remote_file("mods/a.jar", b"a")],
            overrides={"config/a.toml": b"common"},
            extra_members={
                "client-overrides/config/a.toml": b"client",
                "server-overrides/config/server.toml": b"server only",
            },
        )
        parsed = await ModrinthDialect().parse(pack)
        manifest = parsed.manifest

        assert parsed.archive_path == pack
        assert manifest.name == "Test Pack"
        assert manifest.game_version == "1.20.1"
        assert manifest.loaders == {"fabric-loader": "0.15.0"}
        assert [e.path for e in manifest] == ["mods/a.jar", "config/a.toml", "config/a.toml"]

        effective = ManifestResolver.effective_entries(manifest)
        config_entry = [e for e in effective if e.path == "config/a.toml"][0]
        assert config_entry.hash == sha1(b"client")
        assert config_entry.url == "pack://client-overrides/config/a.toml"

    def test_rejects_unknown_format_version(self):
        with pytest.raises(ManifestParseError):
            parse_index({"formatVersion": 2, "files": []})

    def test_rejects_entry_without_hash(self):
        with pytest.raises(ManifestParseError):
            parse_index({"formatVersion": 1, "files": [{"path": "mods/a.jar", "hashes": {}}]})

    def test_prefers_sha1(self):
        index = {"formatVersion": 1, "files": [remote_file("mods/a.jar", b"a")]}
        [entry] = parse_index(index).entries
        assert entry.algorithm is HashAlgorithm.SHA1
        assert entry.url == "https://cdn.example.com/mods/a.jar"
        assert entry.size == 1

    @pytest.mark.asyncio
    async def test_missing_index(self, tmp_path):
        archive_path = tmp_path / "empty.mrpack"
        with zipfile.ZipFile(archive_path, "w") as archive:
            archive.writestr("readme.txt", "hi")
        with pytest.raises(ManifestParseError):
            await ModrinthDialect().parse(str(archive_path))

    @pytest.mark.parametrize(
        "overrides",
        [
            {"hashes": ["abc"]},
            {"hashes": {"sha1": 123}},
            {"env": "client"},
            {"path": 42},
            {"downloads": "https://cdn.example.com/a.jar"},
            {"downloads": [None]},
            {"fileSize": "12"},
            {"fileSize": True},
        ],
    )
    def test_malformed_fields(self, overrides):
        """字段类型错误时抛出 ManifestParseError"""
        item = remote_file("mods/a.jar", b"a")
        item.update(overrides)
        with pytest.raises(ManifestParseError):
            parse_index({"formatVersion": 1, "files": [item]})

    def test_malformed_document(self):
        with pytest.raises(ManifestParseError):
            parse_index({"formatVersion": 1, "files": {"mods/a.jar": {}}})
        with pytest.raises(ManifestParseError):
            parse_index({"formatVersion": 1, "files": [], "dependencies": ["minecraft"]})
        with pytest.raises(ManifestParseError):
            parse_index({"formatVersion": 1, "files": [], "dependencies": {"minecraft": 1}})


def write_curse_pack(path, files, overrides_dir="overrides", overrides=None):
    manifest = {
        "minecraft": {
            "version": "1.20.1",
            "modLoaders": [{"id": "forge-47.2.0", "primary": True}],
        },
        "manifestType": "minecraftModpack",
        "manifestVersion": 1,
        "name": "Curse Pack",
        "version": "3.1",
        "author": "someone",
        "files": files,
        "overrides": overrides_dir,
    }
    with zipfile.ZipFile(path, "w") as archive:
        archive.writestr("manifest.json", json.dumps(manifest))
        for name, data in (overrides or {}).items():
            archive.writestr(f"{overrides_dir}/{name}", data)
    return str(path)


class TestCurseDialect:
    """测试 CurseForge manifest.json 解析"""

    @staticmethod
    def resolver(catalog):
        async def resolve(project_id, file_id):
            return catalog.get((project_id, file_id))

        return resolve

    @pytest.mark.asyncio
    async def test_parse(self, tmp_path):
        catalog = {
            (238222, 4712866): FileInfo(
                url="https://edge.forgecdn.net/files/4712/866/jei.jar",
                filename="jei.jar",
                size=3,
                hashes={"sha1": sha1(b"jei"), "murmur2": "1"},
            ),
            (1, 2): FileInfo(
                url="https://edge.forgecdn.net/files/optional.jar",
                filename="optional.jar",
                hashes={"sha1": "aa"},
            ),
        }
        pack = write_curse_pack(
            tmp_path / "curse.zip",
            files=[
                {"projectID": 238222, "fileID": 4712866, "required": True},
                {"projectID": 1, "fileID": 2, "required": False},
            ],
            overrides_dir="custom",
            overrides={"config/jei.toml": b"x"},
        )
        parsed = await CurseDialect(self.resolver(catalog)).parse(pack)
        manifest = parsed.manifest

        assert manifest.game_version == "1.20.1"
        assert manifest.loaders == {"forge": "47.2.0"}
        assert [e.path for e in manifest] == ["mods/jei.jar", "config/jei.toml"]
        assert manifest.entries[0].hash == sha1(b"jei")
        assert manifest.entries[1].url == "pack://custom/config/jei.toml"

    @pytest.mark.asyncio
    async def test_unknown_file(self, tmp_path):
        pack = write_curse_pack(tmp_path / "c.zip", files=[{"projectID": 9, "fileID": 9}])
        with pytest.raises(ManifestParseError):
            await CurseDialect(self.resolver({})).parse(pack)

    @pytest.mark.asyncio
    async def test_api_error_is_parse_error(self, tmp_path):
        async def failing(project_id, file_id):
            raise APIError("API 请求失败 (状态码: 403)")

        pack = write_curse_pack(tmp_path / "c.zip", files=[{"projectID": 9, "fileID": 9}])
        with pytest.raises(ManifestParseError):
            await CurseDialect(failing).parse(pack)

    @pytest.mark.asyncio
    async def test_file_without_download_url(self, tmp_path):
        """不允许第三方下载的文件保留在清单中，url 为 None"""
        catalog = {
            (5, 6): FileInfo(url=None, filename="locked.jar", hashes={"sha1": "bb"})
        }
        pack = write_curse_pack(tmp_path / "c.zip", files=[{"projectID": 5, "fileID": 6}])
        manifest = (await CurseDialect(self.resolver(catalog)).parse(pack)).manifest
        assert manifest.entries[0].url is None

    def test_malformed_loaders(self):
        """modLoaders 条目不是对象或 id 不是字符串"""
        assert parse_loaders({"modLoaders": [{"id": "fabric-0.15.0"}]}) == {"fabric": "0.15.0"}
        with pytest.raises(ManifestParseError):
            parse_loaders({"modLoaders": ["forge-47.2.0"]})
        with pytest.raises(ManifestParseError):
            parse_loaders({"modLoaders": [{"id": 47}]})
        with pytest.raises(ManifestParseError):
            parse_loaders({"modLoaders": {"id": "forge-47.2.0"}})

    @pytest.mark.asyncio
    async def test_malformed_file_item(self, tmp_path):
        pack = write_curse_pack(tmp_path / "c.zip", files=["238222/4712866"])
        with pytest.raises(ManifestParseError):
            await CurseDialect(self.resolver({})).parse(pack)

    @pytest.mark.asyncio
    async def test_failure_cancels_pending_lookups(self, tmp_path):
        """一个查询失败后，其余仍在进行的查询被取消"""
        cancelled = []

        async def resolve(project_id, file_id):
            if project_id == 1:
                raise APIError("API 请求失败 (状态码: 500)")
            try:
                await asyncio.sleep(30)
            except asyncio.CancelledError:
                cancelled.append(project_id)
                raise

        pack = write_curse_pack(
            tmp_path / "c.zip",
            files=[{"projectID": 1, "fileID": 1}, {"projectID": 2, "fileID": 2}],
        )
        with pytest.raises(ManifestParseError):
            await asyncio.wait_for(CurseDialect(resolve).parse(pack), 5)
        assert cancelled == [2]


VERSION_DATA = {
    "id": "1.20.1",
    "downloads": {
        "client": {
            "sha1": "c" * 40,
            "size": 100,
            "url": "https://piston-data.mojang.com/v1/objects/cc/client.jar",
        }
    },
    "assetIndex": {
        "id": "5",
        "sha1": "d" * 40,
        "size": 50,
        "url": "https://piston-meta.mojang.com/v1/packages/dd/5.json",
    },
    "libraries": [
        {
            "name": "com.mojang:logging:1.1.1",
            "downloads": {
                "artifact": {
                    "path": "com/mojang/logging/1.1.1/logging-1.1.1.jar",
                    "sha1": "1" * 40,
                    "size": 10,
                    "url": "https://libraries.minecraft.net/com/mojang/logging/1.1.1/logging-1.1.1.jar",
                }
            },
        },
        {
            "name": "org.lwjgl:lwjgl-macos:3.3.1",
            "rules": [{"action": "allow", "os": {"name": "osx"}}],
            "downloads": {
                "artifact": {
                    "path": "org/lwjgl/lwjgl-macos.jar",
                    "sha1": "2" * 40,
                    "size": 10,
                    "url": "https://libraries.minecraft.net/org/lwjgl/lwjgl-macos.jar",
                }
            },
        },
    ],
}

ASSET_INDEX = {
    "objects": {
        "minecraft/sounds/a.ogg": {"hash": "ab" + "0" * 38, "size": 5},
        "minecraft/sounds/b.ogg": {"hash": "ab" + "0" * 38, "size": 5},
        "icons/icon.png": {"hash": "ef" + "1" * 38, "size": 7},
    }
}


class TestMinecraftDialect:
    """测试 Minecraft 本体解析"""

    def test_rules(self):
        assert rules_allow(None, "linux")
        assert not rules_allow([{"action": "allow", "os": {"name": "osx"}}], "linux")
        assert rules_allow(
            [{"action": "allow"}, {"action": "disallow", "os": {"name": "osx"}}], "linux"
        )
        assert not rules_allow(
            [{"action": "allow"}, {"action": "disallow", "os": {"name": "osx"}}], "osx"
        )

    @pytest.mark.asyncio
    async def test_parse_offline(self):
        """客户端、运行库（按系统过滤）、资源索引与去重后的资源对象"""
        parsed = await MinecraftDialect(os_name="linux").parse((VERSION_DATA, ASSET_INDEX))
        paths = [e.path for e in parsed.manifest]

        assert paths == [
            "versions/1.20.1/1.20.1.jar",
            "libraries/com/mojang/logging/1.1.1/logging-1.1.1.jar",
            "assets/indexes/5.json",
            "assets/objects/ef/ef" + "1" * 38,
            "assets/objects/ab/ab" + "0" * 38,
        ]
        asset = parsed.manifest.entries[-1]
        assert asset.url == "https://resources.download.minecraft.net/ab/ab" + "0" * 38
        assert parsed.archive_path is None

    @pytest.mark.asyncio
    async def test_version_id_requires_client(self):
        with pytest.raises(ManifestParseError):
            await MinecraftDialect().parse("1.20.1")

    def test_missing_client_download(self):
        with pytest.raises(ManifestParseError):
            version_entries({"id": "x"}, "linux")

    def test_malformed_library(self):
        """libraries 条目或下载信息类型错误"""
        data = dict(VERSION_DATA, libraries=["com.mojang:logging:1.1.1"])
        with pytest.raises(ManifestParseError):
            version_entries(data, "linux")

        artifact = {"path": 7, "sha1": "1" * 40, "url": "https://libraries.minecraft.net/x.jar"}
        library = {"name": "x", "downloads": {"artifact": artifact}}
        with pytest.raises(ManifestParseError):
            version_entries(dict(VERSION_DATA, libraries=[library]), "linux")

    def test_malformed_asset_object(self):
        """资源对象不是对象或 hash 不是字符串"""
        with pytest.raises(ManifestParseError):
            asset_entries(VERSION_DATA, {"objects": {"icons/icon.png": "ef" + "1" * 38}})
        with pytest.raises(ManifestParseError):
            asset_entries(VERSION_DATA, {"objects": {"icons/icon.png": {"hash": 1}}})

    @pytest.mark.asyncio
    async def test_java_runtime(self):
        """java=True 时追加 javaVersion.component 指定的运行时文件"""
        client = FakeMojang()
        dialect = MinecraftDialect(client, os_name="linux", java=True, platform_name="linux")
        version_data = dict(
            VERSION_DATA, javaVersion={"component": "java-runtime-gamma", "majorVersion": 17}
        )
        manifest = (await dialect.parse((version_data, ASSET_INDEX))).manifest

        assert client.requested == [("java-runtime-gamma", "linux")]
        root = "runtime/java-runtime-gamma/linux/java-runtime-gamma"
        runtime = [e for e in manifest if e.path.startswith("runtime/")]
        assert [e.path for e in runtime] == [f"{root}/bin/java", f"{root}/lib/modules"]
        assert runtime[0].executable

    @pytest.mark.asyncio
    async def test_java_runtime_not_specified(self):
        client = FakeMojang()
        dialect = MinecraftDialect(client, os_name="linux", java=True, platform_name="linux")
        manifest = (await dialect.parse((VERSION_DATA, ASSET_INDEX))).manifest

        assert client.requested == []
        assert not [e for e in manifest if e.path.startswith("runtime/")]


RUNTIME_FILES = {
    "files": {
        "bin": {"type": "directory"},
        "bin/java": {
            "type": "file",
            "executable": True,
            "downloads": {
                "raw": {
                    "sha1": "a" * 40,
                    "size": 10,
                    "url": "https://piston-data.mojang.com/v1/objects/aa/java",
                },
                "lzma": {"sha1": "b" * 40, "size": 5, "url": "https://example.com/java.lzma"},
            },
        },
        "legal/java.base/LICENSE": {"type": "link", "target": "../../LICENSE"},
        "lib/modules": {
            "type": "file",
            "executable": False,
            "downloads": {
                "raw": {
                    "sha1": "c" * 40,
                    "size": 20,
                    "url": "https://piston-data.mojang.com/v1/objects/cc/modules",
                }
            },
        },
    }
}


class FakeMojang:
    """只提供运行时清单的 MojangClient 替身"""

    def __init__(self):
        self.requested = []

    async def get_runtime_files(self, component, platform_name):
        self.requested.append((component, platform_name))
        return RUNTIME_FILES


class TestRuntimeDialect:
    """测试 Java 运行时解析"""

    def test_runtime_entries(self):
        """只保留普通文件，使用 raw 下载并记录可执行标记"""
        entries = runtime_entries("java-runtime-gamma", RUNTIME_FILES, "windows-x64")
        root = runtime_root("java-runtime-gamma", "windows-x64")

        assert root == "runtime/java-runtime-gamma/windows-x64/java-runtime-gamma"
        assert [e.path for e in entries] == [f"{root}/bin/java", f"{root}/lib/modules"]
        java, modules = entries
        assert java.executable and not modules.executable
        assert java.hash == "a" * 40
        assert java.algorithm is HashAlgorithm.SHA1
        assert java.url == "https://piston-data.mojang.com/v1/objects/aa/java"
        assert modules.size == 20

    def test_malformed_runtime_file(self):
        broken = {"files": {"bin/java": {"type": "file", "downloads": {"lzma": {}}}}}
        with pytest.raises(ManifestParseError):
            runtime_entries("java-runtime-gamma", broken, "linux")
        with pytest.raises(ManifestParseError):
            runtime_entries("java-runtime-gamma", {"files": ["bin/java"]}, "linux")

    @pytest.mark.asyncio
    async def test_parse_offline(self):
        dialect = RuntimeDialect(platform_name="linux")
        parsed = await dialect.parse(("java-runtime-gamma", RUNTIME_FILES))

        assert parsed.manifest.name == "Java java-runtime-gamma"
        assert parsed.manifest.version == "java-runtime-gamma"
        assert parsed.manifest.game_version is None
        assert len(parsed.manifest) == 2

    @pytest.mark.asyncio
    async def test_parse_online(self):
        client = FakeMojang()
        parsed = await RuntimeDialect(client, platform_name="mac-os").parse("jre-legacy")

        assert client.requested == [("jre-legacy", "mac-os")]
        assert parsed.manifest.entries[0].path.startswith("runtime/jre-legacy/mac-os/")

    @pytest.mark.asyncio
    async def test_component_requires_client(self):
        with pytest.raises(ManifestParseError):
            await RuntimeDialect(platform_name="linux").parse("jre-legacy")

    @pytest.mark.asyncio
    async def test_api_error_is_parse_error(self):
        class Missing:
            async def get_runtime_files(self, component, platform_name):
                raise APIError("linux 上没有 Java 运行时 jre-legacy")

        with pytest.raises(ManifestParseError):
            await RuntimeDialect(Missing(), platform_name="linux").parse("jre-legacy")


class TestRegistry:
    def test_get_dialect(self):
        assert isinstance(get_dialect("modrinth"), ModrinthDialect)
        assert isinstance(get_dialect("minecraft", os_name="linux"), MinecraftDialect)
        assert isinstance(get_dialect("runtime", platform_name="linux"), RuntimeDialect)
