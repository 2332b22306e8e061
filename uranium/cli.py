"""
CLI 模块

命令行接口实现。
"""

import asyncio
import json
from pathlib import Path
from typing import Optional

import click
import toml
import yaml
from loguru import logger

from uranium import __version__
from uranium.dialects import (
    CurseDialect,
    MinecraftDialect,
    ModrinthDialect,
    RuntimeDialect,
)
from uranium.exceptions import ConfigParseError, InstallError, UraniumError
from uranium.installer import InstallReport, ModpackInstaller
from uranium.logger import setup_logger, teardown_logger
from uranium.models import InstallerConfig, ManifestDialect, PackConfig, PruneScope
from uranium.packager import PackBuilder
from uranium.services import CurseForgeClient, ModrinthClient, MojangClient


def load_config(config_path: Optional[str]) -> dict:
    """加载配置文件（toml / json / yaml）"""
    if config_path is None:
        return {}

    path = Path(config_path)
    if not path.exists():
        raise click.ClickException(f"配置文件不存在: {config_path}")

    suffix = path.suffix.lower()
    try:
        if suffix == ".toml":
            return toml.load(config_path)
        elif suffix == ".json":
            return json.loads(path.read_text(encoding="utf-8"))
        elif suffix in (".yaml", ".yml"):
            return yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (toml.TomlDecodeError, json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigParseError(
            f"配置文件解析失败: {e}", context={"path": config_path}
        ) from e
    raise click.ClickException(f"不支持的配置文件格式: {suffix}")


def installer_config(config_path: Optional[str], **overrides) -> InstallerConfig:
    """配置文件 + 命令行选项（非 None 的选项覆盖配置文件）"""
    try:
        config = InstallerConfig.from_dict(load_config(config_path))
    except UraniumError as e:
        raise click.ClickException(str(e))
    for key, value in overrides.items():
        if value is not None:
            setattr(config, key, value)
    return config


def pack_config(config_path: Optional[str]) -> PackConfig:
    try:
        return PackConfig.from_dict(load_config(config_path))
    except UraniumError as e:
        raise click.ClickException(str(e))


def print_report(report: InstallReport) -> None:
    summary = report.summary()
    click.echo(
        f"状态: {summary['state']}  下载: {summary['fetched']}  保留: {summary['kept']}  "
        f"删除: {summary['removed']}  失败: {summary['failed']}"
    )
    for failure in report.errors:
        click.echo(f"  ✗ {failure.path}: {failure.error}", err=True)


def run(coro):
    """运行协程，把 Uranium 异常转换为 ClickException"""
    try:
        return asyncio.run(coro)
    except InstallError as e:
        if e.report is not None:
            print_report(e.report)
        raise click.ClickException(str(e))
    except UraniumError as e:
        logger.error(f"运行失败: {e}")
        raise click.ClickException(str(e))


@click.group()
@click.option("--debug", is_flag=True, help="启用调试模式")
@click.version_option(version=__version__)
@click.pass_context
def main(ctx: click.Context, debug: bool):
    """Uranium - Minecraft 本体与整合包安装工具"""
    setup_logger(level="DEBUG" if debug else None)
    ctx.call_on_close(teardown_logger)


@main.command()
@click.argument("source", type=click.Path(exists=True, dir_okay=False))
@click.option("-d", "--dir", "root", default=".", help="安装目录")
@click.option("-c", "--config", "config_path", type=click.Path(exists=True), help="配置文件")
@click.option(
    "--dialect",
    type=click.Choice([d.value for d in (ManifestDialect.MODRINTH, ManifestDialect.CURSE)]),
    default=None,
    help="整合包格式（默认按扩展名判断）",
)
@click.option("--side", type=click.Choice(["client", "server"]), default="client")
@click.option("--prune/--no-prune", default=None, help="删除清单中不再出现的文件")
@click.option(
    "--prune-scope",
    type=click.Choice([s.value for s in PruneScope]),
    default=None,
    help="清理范围",
)
@click.option(
    "--permissive/--fail-closed", default=None, help="部分失败时是否仍返回成功"
)
def install(
    source: str,
    root: str,
    config_path: Optional[str],
    dialect: Optional[str],
    side: str,
    prune: Optional[bool],
    prune_scope: Optional[str],
    permissive: Optional[bool],
):
    """安装整合包 (.mrpack 或 CurseForge .zip)"""
    config = installer_config(
        config_path,
        prune=prune,
        prune_scope=PruneScope(prune_scope) if prune_scope else None,
        permissive=permissive,
    )
    if dialect is None:
        dialect = "modrinth" if source.endswith(".mrpack") else "curse"

    async def _install():
        if dialect == ManifestDialect.MODRINTH.value:
            installer = ModpackInstaller(ModrinthDialect(side), root, config)
            return await installer.install(source)

        if not config.curse_api_key:
            raise click.ClickException("CurseForge 整合包需要 API key (CURSEFORGE_API_KEY)")
        async with CurseForgeClient(config.curse_api_key) as client:
            installer = ModpackInstaller(CurseDialect(client), root, config)
            return await installer.install(source)

    print_report(run(_install()))


@main.command()
@click.argument("version", required=False)
@click.option("-d", "--dir", "root", default=".", help="游戏目录")
@click.option("-c", "--config", "config_path", type=click.Path(exists=True), help="配置文件")
@click.option("--snapshot", is_flag=True, help="未指定版本时使用最新快照而不是最新正式版")
@click.option("--java/--no-java", default=False, help="同时安装版本要求的 Java 运行时")
def game(
    version: Optional[str],
    root: str,
    config_path: Optional[str],
    snapshot: bool,
    java: bool,
):
    """安装 Minecraft 本体（默认最新正式版）"""
    config = installer_config(config_path)

    async def _install():
        async with MojangClient() as client:
            target = version
            if target is None:
                target = await client.get_latest("snapshot" if snapshot else "release")
                click.echo(f"最新版本: {target}")
            installer = ModpackInstaller(MinecraftDialect(client, java=java), root, config)
            return await installer.install(target)

    print_report(run(_install()))


@main.command()
@click.argument("component")
@click.option("-d", "--dir", "root", default=".", help="游戏目录")
@click.option("-c", "--config", "config_path", type=click.Path(exists=True), help="配置文件")
@click.option("--platform", "platform_name", default=None, help="运行时平台（默认当前系统）")
def runtime(
    component: str, root: str, config_path: Optional[str], platform_name: Optional[str]
):
    """安装 Java 运行时组件（如 java-runtime-gamma）"""
    config = installer_config(config_path)

    async def _install():
        async with MojangClient() as client:
            dialect = RuntimeDialect(client, platform_name=platform_name)
            return await ModpackInstaller(dialect, root, config).install(component)

    print_report(run(_install()))


@main.command()
@click.argument("source_dir", type=click.Path(exists=True, file_okay=False))
@click.option("-o", "--output", required=True, help="输出文件路径")
@click.option("-c", "--config", "config_path", type=click.Path(exists=True), help="配置文件")
@click.option("--name", default=None, help="整合包名称")
@click.option("--pack-version", default=None, help="整合包版本")
@click.option("--game-version", default=None, help="Minecraft 版本")
@click.option("--offline", is_flag=True, help="不查询 Modrinth，全部内嵌")
def make(
    source_dir: str,
    output: str,
    config_path: Optional[str],
    name: Optional[str],
    pack_version: Optional[str],
    game_version: Optional[str],
    offline: bool,
):
    """把本地目录打包为 mrpack"""
    config = pack_config(config_path)
    if name:
        config.name = name
    if pack_version:
        config.version = pack_version
    if game_version:
        config.game_version = game_version

    async def _make():
        if offline:
            return await PackBuilder(None, config).build(source_dir, output)
        async with ModrinthClient() as client:
            return await PackBuilder(client, config).build(source_dir, output)

    descriptor = run(_make())
    click.echo(
        f"{descriptor.archive_path}: 引用 {len(descriptor.manifest)} 个, "
        f"内嵌 {len(descriptor.embedded)} 个"
    )


@main.command()
@click.argument("root", type=click.Path(exists=True, file_okay=False), default=".")
def verify(root: str):
    """对照安装记录校验目录"""

    async def _verify():
        installer = ModpackInstaller(ModrinthDialect(), root)
        return await installer.plan()

    actions = run(_verify())
    broken = [action for action in actions if action.is_fetch]
    for action in broken:
        click.echo(f"  ✗ {action.path}", err=True)
    if broken:
        raise click.ClickException(f"{len(broken)} 个文件缺失或已损坏")
    click.echo(f"全部 {len(actions)} 个文件校验通过")


if __name__ == "__main__":
    main()
