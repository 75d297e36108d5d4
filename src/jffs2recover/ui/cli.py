"""
jffs2recover - Command-Line Interface
Thin shell over the recovery engine with rich terminal output

Features:
- Image summary and scan diagnostics
- Current and historical directory tree
- Access/create/write/rename/delete timeline
- Per-inode snapshot export and tree rebuild

Dependencies:
    pip install click rich
"""

import sys
from pathlib import Path

import click
from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table
from rich.tree import Tree

from .. import __version__
from ..app import Jffs2RecoveryApp
from ..core.compression import DECOMPRESSORS
from ..core.structures import JFFS2_COMPR_NAMES, format_timestamp
from ..utils import ReportFormatter, format_bytes

console = Console()


def _fail(error: Exception):
    console.print(f"[bold red]Error:[/bold red] {escape(str(error))}")
    sys.exit(1)


def _open_session(ctx, image_path, output_dir=None):
    """Build the application from the global options and open a session"""
    options = ctx.obj or {}
    app = Jffs2RecoveryApp(options.get('config'), overrides={
        'endianness': options.get('endian'),
        'verify_header_crc': True if options.get('verify_crc') else None,
        'log_level': 'DEBUG' if options.get('verbose') else None,
    })
    session_id = app.create_session(image_path, output_dir)
    return app, session_id


def _load(app, session_id):
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("[cyan]Scanning nodes...", total=None)
        parser = app.get_parser(session_id)
        progress.update(task, completed=True)
    return parser


@click.group()
@click.option('--endian', type=click.Choice(['big', 'little']), default=None,
              help='Byte order of the image (default: big, or the config value)')
@click.option('--verify-crc', is_flag=True, help='Verify node header CRCs')
@click.option('--config', 'config', type=click.Path(exists=True, path_type=Path),
              help='JSON configuration file')
@click.option('--verbose', '-v', is_flag=True, help='Debug logging')
@click.pass_context
def cli(ctx, endian, verify_crc, config, verbose):
    """jffs2recover - JFFS2 forensic recovery tool"""
    ctx.ensure_object(dict)
    ctx.obj.update(endian=endian, verify_crc=verify_crc, config=config, verbose=verbose)


@cli.command()
def version():
    """Show version information"""
    version_info = Table(show_header=False, box=box.ROUNDED)
    version_info.add_column(style="cyan bold")
    version_info.add_column(style="white")

    version_info.add_row("Application", "jffs2recover")
    version_info.add_row("Version", __version__)
    version_info.add_row("Python", f"{sys.version.split()[0]}")
    version_info.add_row("Compression", ", ".join(JFFS2_COMPR_NAMES[m] for m in sorted(DECOMPRESSORS)))

    console.print(Panel(version_info, title="[bold blue]Version Information[/bold blue]", border_style="blue"))


@cli.command()
@click.argument('image_path', type=click.Path(exists=True))
@click.pass_context
def info(ctx, image_path):
    """Summarize the nodes found in an image"""
    try:
        app, session_id = _open_session(ctx, image_path)
        _load(app, session_id)
        fs_info = app.analyze(session_id)
        parser = app.get_parser(session_id)
    except Exception as e:
        _fail(e)

    results = Table(title="JFFS2 Image Analysis", box=box.ROUNDED)
    results.add_column("Property", style="cyan bold")
    results.add_column("Value", style="white")

    results.add_row("Image Path", image_path)
    results.add_row("Image Size", format_bytes(fs_info['image_size']))
    results.add_row("Byte Order", fs_info['endianness'])
    results.add_row("Header CRC", "verified" if fs_info['header_crc_verified'] else "not checked")
    results.add_row("Nodes", str(fs_info['nodes']))
    results.add_row("  └─ Inode Nodes", str(fs_info['inode_nodes']))
    results.add_row("  └─ Dirent Nodes", str(fs_info['dirent_nodes']))
    results.add_row("  └─ Other Nodes", str(fs_info['opaque_nodes']))
    results.add_row("Inodes With Data", str(fs_info['inodes']))
    results.add_row("Directories", str(fs_info['directories']))
    results.add_row("Root Inodes", ' '.join(str(i) for i in fs_info['root_inodes']) or '-')
    results.add_row("Erased Space", format_bytes(fs_info['erased_bytes']))
    results.add_row("Diagnostics", str(fs_info['diagnostics']))
    console.print(results)

    if parser.diagnostics:
        diag_table = Table(title="Scan Diagnostics", box=box.SIMPLE)
        diag_table.add_column("Offset", style="yellow", justify="right")
        diag_table.add_column("Kind", style="red")
        diag_table.add_column("Message", style="white")
        for diagnostic in parser.diagnostics:
            offset = f"0x{diagnostic.offset:X}" if diagnostic.offset is not None else "-"
            diag_table.add_row(offset, diagnostic.kind, escape(diagnostic.message))
        console.print(diag_table)


@cli.command()
@click.argument('image_path', type=click.Path(exists=True))
@click.option('--plain', is_flag=True, help='Indented text listing instead of a rich tree')
@click.pass_context
def tree(ctx, image_path, plain):
    """Show every name of the directory tree with its inodes through time"""
    try:
        app, session_id = _open_session(ctx, image_path)
        _load(app, session_id)
        entries = app.get_tree(session_id)
        roots = app.get_parser(session_id).list_root_inodes()
    except Exception as e:
        _fail(e)

    if plain:
        for line in ReportFormatter.tree_lines(entries):
            click.echo(line)
        return

    tree_view = Tree(f"[bold]{escape(Path(image_path).name)}[/bold] (root inodes: {' '.join(map(str, roots))})")
    branches = {(): tree_view}
    for item in entries:
        child = item.entry
        name = escape(child.name_str)
        label = f"[cyan]{name}/[/cyan]" if child.is_dir else name
        if child.deleted:
            label = f"[red strike]{label}[/red strike]"
        inodes = ' '.join(str(ino) for ino in child.inodes)
        parent = branches.get(item.path[:-1], tree_view)
        branches[item.path] = parent.add(f"{label}  [dim]{inodes}[/dim]")
    console.print(tree_view)


@cli.command()
@click.argument('image_path', type=click.Path(exists=True))
@click.option('--format', 'fmt', type=click.Choice(['csv', 'table']), default='table',
              help='Output format')
@click.pass_context
def timeline(ctx, image_path, fmt):
    """List access/create/write/rename/delete events in time order"""
    try:
        app, session_id = _open_session(ctx, image_path)
        _load(app, session_id)
        events = app.get_timeline(session_id)
    except Exception as e:
        _fail(e)

    if fmt == 'csv':
        click.echo(ReportFormatter.timeline_csv(events), nl=False)
        return

    colors = {'delete': 'red', 'rename': 'green', 'write': 'yellow'}
    table = Table(title=f"Timeline ({len(events)} events)", box=box.ROUNDED)
    table.add_column("Time (UTC)", style="dim")
    table.add_column("Action")
    table.add_column("Inode", justify="right")
    table.add_column("Name", style="cyan")
    table.add_column("Parent", justify="right")
    for event in events:
        color = colors.get(event.action, 'white')
        table.add_row(format_timestamp(event.timestamp), f"[{color}]{event.action}[/{color}]",
                      str(event.inode), escape(event.name), str(event.parent_inode) if event.name else '')
    console.print(table)


@cli.command()
@click.argument('image_path', type=click.Path(exists=True))
@click.argument('inode', type=int)
@click.pass_context
def inspect(ctx, image_path, inode):
    """Dump the decoded dirent and inode node history of an inode"""
    try:
        app, session_id = _open_session(ctx, image_path)
        parser = _load(app, session_id)
    except Exception as e:
        _fail(e)

    dirents = parser.dentry_history(inode)
    nodes = parser.inode_history(inode)
    console.print(f"\n[bold cyan]Inode {inode}[/bold cyan] names: {escape(', '.join(parser.names_for_inode(inode))) or '-'}\n")

    if dirents:
        table = Table(title="Directory Entries", box=box.SIMPLE)
        for column in ("Offset", "Version", "Name", "Inode", "Type", "Time (UTC)"):
            table.add_column(column)
        for node in dirents:
            table.add_row(f"0x{node.offset:X}", str(node.version), escape(node.name_str),
                          str(node.ino), str(node.itype), node.mctime_a)
        console.print(table)

    if nodes:
        table = Table(title="Inode Nodes", box=box.SIMPLE)
        for column in ("Offset", "Version", "Mode", "Size", "Range", "Compr", "Data", "Modified (UTC)"):
            table.add_column(column)
        for node in nodes:
            table.add_row(f"0x{node.offset:X}", str(node.version), f"{node.mode:o}", str(node.isize),
                          f"{node.foff}+{node.dsize}", JFFS2_COMPR_NAMES.get(node.compr1, str(node.compr1)),
                          str(len(node.data)), node.mtime_a)
        console.print(table)

    if not dirents and not nodes:
        console.print("[yellow]No nodes found for this inode[/yellow]")


@cli.command()
@click.argument('image_path', type=click.Path(exists=True))
@click.argument('output_dir', type=click.Path())
@click.argument('inodes', type=int, nargs=-1)
@click.option('--all', 'all_inodes', is_flag=True, help='Export every inode with data')
@click.pass_context
def extract(ctx, image_path, output_dir, inodes, all_inodes):
    """Export every historical revision of files as ino_<n>_<names>/NNNN"""
    if not inodes and not all_inodes:
        _fail(click.UsageError("Give inode numbers or --all"))

    try:
        app, session_id = _open_session(ctx, image_path, output_dir)
        _load(app, session_id)
        results = app.extract_history(session_id, None if all_inodes else list(inodes))
    except Exception as e:
        _fail(e)

    exported = [r for r in results if r['status'] == 'exported']
    failed = [r for r in results if r['status'] == 'failed']
    console.print(f"\n[bold green]✓ Exported {len(exported)} inode(s)[/bold green]\n")

    table = Table(title="Export Summary", box=box.ROUNDED)
    table.add_column("Inode", style="cyan bold", justify="right")
    table.add_column("Names", style="white")
    table.add_column("Snapshots", justify="right")
    table.add_column("Diagnostics", justify="right")
    for result in exported:
        table.add_row(str(result['inode']), escape(', '.join(result['names'])) or '-',
                      str(len(result['snapshots'])), str(result['diagnostics']))
    for result in failed:
        table.add_row(str(result['inode']), f"[red]{escape(result['error'])}[/red]", '-', '-')
    console.print(table)
    console.print(f"\n[bold]Output Directory:[/bold] {output_dir}\n")


@cli.command()
@click.argument('output_dir', type=click.Path(exists=True, file_okay=False))
@click.argument('image_path', type=click.Path(exists=True))
@click.pass_context
def rebuild(ctx, output_dir, image_path):
    """Link exported snapshots into the reconstructed directory tree"""
    try:
        app, session_id = _open_session(ctx, image_path, output_dir)
        _load(app, session_id)
        linked = app.rebuild_tree(session_id)
    except Exception as e:
        _fail(e)

    console.print(f"\n[bold green]✓ Linked {linked} snapshot file(s) under {output_dir}[/bold green]\n")


def main():
    """Main CLI entry point"""
    cli(obj={})


if __name__ == "__main__":
    main()
