#!/usr/bin/env python3
"""
象棋走法助手命令行入口
"""

import sys
from typing import Optional, Tuple

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .config import ConfigManager, EngineConfig, AnalysisConfig
from .engine_protocol import EngineSession, SessionState, board_to_fen, fen_to_board, INITIAL_FEN
from .engine_protocol.notation import uci_to_coordinates
from .rules_engine import BoardValidator, ChessBoard, GameState
from .utils import setup_logger, InvalidMoveError, XiangqiAssistantError

console = Console()

STATE_LABELS = {
    GameState.PLAYING: "[green]对局中[/green]",
    GameState.CHECK: "[yellow]将军[/yellow]",
    GameState.CHECKMATE: "[red]将死[/red]",
    GameState.STALEMATE: "[red]困毙[/red]",
}


def apply_moves(board: ChessBoard, tokens: Tuple[str, ...]) -> ChessBoard:
    """
    依次在棋盘上执行UCI走法，并标注将军/将死

    Raises:
        InvalidMoveError: 走法格式错误或被规则拒绝
    """
    for token in tokens:
        try:
            from_pos, to_pos = uci_to_coordinates(token)
        except ValueError as e:
            raise InvalidMoveError(token, str(e))

        move = board.create_move(from_pos, to_pos)
        if move is None or not board.make_move(move):
            raise InvalidMoveError(token, "当前局面下不可走")

        state = board.game_state()
        board.annotate_last_move(state in (GameState.CHECK, GameState.CHECKMATE),
                                 state is GameState.CHECKMATE)
    return board


def _load_configs(config_dir: Optional[str]) -> Tuple[EngineConfig, AnalysisConfig]:
    if not config_dir:
        return EngineConfig(), AnalysisConfig()
    manager = ConfigManager(config_dir)
    return manager.get_engine_config(), manager.get_analysis_config()


@click.group()
@click.option('--config-dir', type=click.Path(file_okay=False), default=None, help='配置文件目录')
@click.option('--log-level', type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR']),
              default=None, help='日志级别')
@click.pass_context
def cli(ctx: click.Context, config_dir: Optional[str], log_level: Optional[str]):
    """象棋走法助手"""
    ctx.ensure_object(dict)
    ctx.obj['config_dir'] = config_dir

    if config_dir:
        system_config = ConfigManager(config_dir).get_system_config()
        setup_logger(
            level=log_level or system_config.log_level,
            log_file=system_config.log_file,
            log_dir=system_config.log_dir,
            max_size=system_config.log_max_size,
            backup_count=system_config.log_backup_count,
            console_output=system_config.console_output,
        )
    else:
        setup_logger(level=log_level or 'WARNING')


@cli.command()
@click.option('--fen', type=str, default=INITIAL_FEN, help='FEN格式的棋局状态')
@click.option('--moves', 'move_tokens', multiple=True, help='依次执行的UCI走法，如 h2e2')
def show(fen: str, move_tokens: Tuple[str, ...]):
    """显示棋盘、对局状态和局面检查结果"""
    try:
        board = apply_moves(fen_to_board(fen), move_tokens)
    except XiangqiAssistantError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        sys.exit(1)

    console.print(board.to_visual_string())
    console.print(f"FEN: {board_to_fen(board)}")
    console.print(f"状态: {STATE_LABELS[board.game_state()]}")

    report = BoardValidator().get_validation_report(board)
    if report['overall_valid']:
        console.print("[green]局面检查通过[/green]")
    else:
        for name, result in report['validations'].items():
            for error in result['errors']:
                console.print(f"[yellow]{name}: {error}[/yellow]")


@cli.command()
@click.option('--fen', type=str, default=INITIAL_FEN, help='FEN格式的棋局状态')
@click.option('--safe/--no-safe', default=True, help='是否排除走后被将军的走法')
def moves(fen: str, safe: bool):
    """列出行棋方的全部走法"""
    try:
        board = fen_to_board(fen)
    except XiangqiAssistantError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        sys.exit(1)

    legal = board.legal_moves(safe=safe)
    table = Table(title=f"{board.current_player.display_name}可走 {len(legal)} 步")
    table.add_column("UCI")
    table.add_column("记法")
    table.add_column("吃子")
    for move in legal:
        table.add_row(move.to_coordinate_notation(), move.notation,
                      move.captured.symbol if move.captured else "")
    console.print(table)


@cli.command()
@click.option('--engine', 'engine_path', type=click.Path(exists=True, dir_okay=False),
              default=None, help='UCI引擎可执行文件路径')
@click.option('--fen', type=str, default=INITIAL_FEN, help='FEN格式的棋局状态')
@click.option('--moves', 'move_tokens', multiple=True, help='分析前依次执行的UCI走法')
@click.option('--depth', type=int, default=None, help='搜索深度')
@click.pass_context
def analyze(ctx: click.Context, engine_path: Optional[str], fen: str,
            move_tokens: Tuple[str, ...], depth: Optional[int]):
    """启动引擎分析局面，输出建议着法"""
    engine_config, analysis_config = _load_configs(ctx.obj.get('config_dir'))
    try:
        board = apply_moves(fen_to_board(fen), move_tokens)
    except XiangqiAssistantError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        sys.exit(1)

    state = board.game_state()
    if state in (GameState.CHECKMATE, GameState.STALEMATE):
        console.print(f"对局已结束: {STATE_LABELS[state]}")
        return

    with EngineSession(engine_config, analysis_config) as session:
        try:
            started = session.start(engine_path).result()
        except XiangqiAssistantError as e:
            console.print(f"[red]{escape(str(e))}[/red]")
            sys.exit(1)
        if not started:
            console.print(f"[red]引擎启动失败: {escape(str(session.error_reason))}[/red]")
            sys.exit(1)

        info = session.engine_info
        console.print(f"[blue]引擎: {info.name} ({info.author})[/blue]")
        with console.status("[green]分析中...[/green]"):
            suggestion = session.analyze(board, depth=depth).result()

        if suggestion is None:
            reason = session.error_reason if session.state is SessionState.ERROR else "无建议"
            console.print(f"[yellow]{escape(str(reason))}[/yellow]")
            sys.exit(1)
        console.print(f"[green]建议: {suggestion.description}[/green]")
        if suggestion.pv:
            console.print(f"主要变化: {' '.join(suggestion.pv)}")


if __name__ == "__main__":
    cli()
