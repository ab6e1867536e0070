"""
Curate command for repocurate.

Reads noarch and linux-64 repodata, runs the curation pipeline and
writes the surviving records to OUTPUT_DIR/<subdir>/repodata.json.
"""

import click
import json
import logging
from typing import Optional

from ..config import DEBUG_FORMAT, configure_logging, load_config
from ..domain import Policy
from ..domain.policy import DEFAULT_CHANNEL_ALIAS
from ..errors import CurationError
from ..exit_codes import exit_with_code, get_exit_code_for_exception
from ..infra import RepodataStore, read_repodata
from ..matchspecs import build_allow_list
from ..render import console, render_diagnostics, render_explanations, render_stage_summary
from ..services import CurationService

logger = logging.getLogger(__name__)


@click.command('curate')
@click.argument('noarch_json', type=click.Path(dir_okay=False))
@click.argument('linux64_json', type=click.Path(dir_okay=False))
@click.option('-o', '--output', 'output_dir', type=click.Path(file_okay=False),
              help='Directory to write <subdir>/repodata.json into')
# Policy options
@click.option('-m', '--matchspecs', 'matchspec_files', multiple=True, type=click.Path(dir_okay=False),
              help='YAML matchspec document (repeatable)')
@click.option('-C', '--spec', 'specs', multiple=True,
              help='Allow-list specifier, e.g. "python >=3.9" (repeatable)')
@click.option('-F', '--ban-feature', 'ban_features', multiple=True,
              help='Remove packages tracking this feature (default from config: pypy)')
@click.option('-A', '--compatible-with', 'anchors', multiple=True,
              help='Anchor package every survivor must co-install with (default from config: python)')
@click.option('--keep-prerelease', is_flag=True, help='Keep dev/alpha/beta/rc versions')
@click.option('--keep-dev', is_flag=True, help='Do not treat "dev" versions as pre-releases')
@click.option('--keep-rc', is_flag=True, help='Do not treat "rc" versions as pre-releases')
@click.option('--channel-alias', help='Base URL for repodata that declares none')
@click.option('--max-passes', type=click.IntRange(min=1), help='Closure pass budget')
# Output options
@click.option('-e', '--explain', is_flag=True, help='Print why each package was removed')
@click.option('--json', 'output_json', is_flag=True, help='Print the run summary as JSON on stdout')
@click.option('--indent', type=click.IntRange(min=0), help='Indent written repodata (default: compact)')
@click.option('--dry-run', is_flag=True, help='Run the pipeline without writing files')
@click.option('--debug', is_flag=True, help='Enable debug logging')
def curate_handler(
    noarch_json: str,
    linux64_json: str,
    output_dir: Optional[str],
    matchspec_files: tuple,
    specs: tuple,
    ban_features: tuple,
    anchors: tuple,
    keep_prerelease: bool,
    keep_dev: bool,
    keep_rc: bool,
    channel_alias: Optional[str],
    max_passes: Optional[int],
    explain: bool,
    output_json: bool,
    indent: Optional[int],
    dry_run: bool,
    debug: bool,
):
    """
    Curate conda repodata down to a consistent subset.

    Examples:

        # Keep python >= 3.9 and everything still installable with it
        repocurate curate noarch.json linux-64.json -o curated -C "python >=3.9"

        # Allow-list from a matchspec document, explain removals
        repocurate curate noarch.json linux-64.json -o curated -m matchspecs.yaml --explain

        # Preview without writing
        repocurate curate noarch.json linux-64.json --dry-run --json
    """
    config = load_config()
    if debug:
        configure_logging('DEBUG', DEBUG_FORMAT)
    else:
        logging_config = config.get('logging', {})
        configure_logging(logging_config.get('level', 'INFO'), logging_config.get('format', '%(message)s'))

    if not output_dir and not dry_run:
        raise click.UsageError("--output is required unless --dry-run is given")

    curation = config.get('curation', {})
    inputs = {'noarch': noarch_json, 'linux-64': linux64_json}
    wanted = curation.get('subdirs') or list(inputs)

    try:
        policy = Policy.build(
            allow_list=build_allow_list(matchspec_files, specs),
            banned_features=ban_features or curation.get('ban_features', ()),
            exclude_prerelease=not keep_prerelease and curation.get('exclude_prerelease', True),
            keep_dev=keep_dev,
            keep_rc=keep_rc,
            prerelease_tokens=curation.get('prerelease_tokens'),
            anchors=anchors or curation.get('compatible_with', ()),
            channel_alias=channel_alias or curation.get('channel_alias') or DEFAULT_CHANNEL_ALIAS,
            append_subdir=curation.get('append_subdir_to_base_url', False),
        )

        raw = {}
        for subdir, path in inputs.items():
            if subdir not in wanted:
                logger.warning(f"Skipping {subdir}: not in curation.subdirs")
                continue
            raw[subdir] = read_repodata(path, subdir)

        service = CurationService(policy, config=config, max_closure_passes=max_passes)
        for progress in service.curate(raw):
            logger.info(progress)
        result = service.last_result

        paths = []
        if not dry_run:
            paths = RepodataStore(output_dir, indent=indent).write_all(result.documents)

    except (CurationError, OSError) as e:
        exit_with_code(get_exit_code_for_exception(e), f"Error: {e}")

    summary = result.to_dict()
    if output_json:
        summary['dry_run'] = dry_run
        summary['written'] = [str(p) for p in paths]
        print(json.dumps(summary, ensure_ascii=False))
    else:
        render_stage_summary(summary)
        for path in paths:
            console.print(f"[dim]Wrote {path}[/dim]")

    if explain:
        render_explanations(result.explanations())
    render_diagnostics(result.diagnostics)
