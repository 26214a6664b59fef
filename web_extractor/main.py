import argparse
import json
import logging
import os
import sys
from typing import List

import yaml
from web_extractor.core.config import load_config, load_settings
from web_extractor.core.errors import ExtractorError, ValidationError
from web_extractor.core.models import JobStatus, Target
from web_extractor.core.service import build_service

logger = logging.getLogger("web_extractor")


def load_targets(cfg: dict) -> List[Target]:
    """
    Builds the Target list from the YAML config.
    Each entry: {url, selectors: [...], options: {...}}; 'options' is optional.
    Top-level 'defaults' (same shape as options) are merged under every target's options.
    """
    if cfg is None:
        raise ValidationError("empty or invalid YAML (yaml.safe_load returned None).")

    if "targets" not in cfg:
        raise ValidationError("required key 'targets' not found in config.")

    if not isinstance(cfg["targets"], list) or not cfg["targets"]:
        raise ValidationError("'targets' must be a non-empty list.")

    defaults = cfg.get("defaults") or {}
    if not isinstance(defaults, dict):
        raise ValidationError("'defaults' must be a mapping.")

    targets: List[Target] = []
    for idx, t in enumerate(cfg["targets"], start=1):
        if not isinstance(t, dict):
            raise ValidationError(f"target #{idx} is not a mapping.")
        entry = dict(t)
        entry["options"] = {**defaults, **(t.get("options") or {})}
        targets.append(Target.from_dict(entry))
        if not targets[-1].selectors:
            logger.info("Target '%s' has no selectors; only metadata will be collected.", t.get("url"))
    return targets


def parse_args(argv=None):
    ap = argparse.ArgumentParser(description="Web Extractor: run one extraction job from a YAML config")
    default_cfg = os.path.join(os.path.dirname(os.path.dirname(__file__)), "config.yaml")
    ap.add_argument(
        "--config",
        "-c",
        default=default_cfg,
        help=f"Path to config.yaml (default: {default_cfg})",
    )
    ap.add_argument("--export", choices=("json", "csv", "excel"), help="Also write the results in this format")
    ap.add_argument("--output-dir", default=None, help="Directory for --export (default: settings.export_dir)")
    ap.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    return ap.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="[%(levelname)s] %(message)s", stream=sys.stderr)
    cfg_path = os.path.abspath(args.config)

    if not os.path.exists(cfg_path):
        logger.error("config.yaml not found at: %s", cfg_path)
        return 2

    logger.info("Using config: %s", cfg_path)

    try:
        cfg = load_config(cfg_path)
        settings = load_settings(cfg=cfg)
        targets = load_targets(cfg)
    except yaml.YAMLError as e:
        logger.error("Failed to parse YAML config: %s", e)
        return 2
    except ExtractorError as e:
        logger.error("Invalid config: %s", e)
        return 2

    service = build_service(settings)
    orchestrator = service.orchestrator
    job_id = orchestrator.submit(targets)
    try:
        job = orchestrator.wait(job_id)
    except KeyboardInterrupt:
        logger.warning("Interrupted, cancelling job %s", job_id)
        orchestrator.cancel(job_id)
        job = orchestrator.status(job_id)

    print(json.dumps(job.to_dict(), ensure_ascii=False, indent=2))

    if args.export and job.status is JobStatus.COMPLETED:
        out_dir = args.output_dir or settings.export_dir
        os.makedirs(out_dir, exist_ok=True)
        try:
            payload = service.export_job(job_id, args.export)
        except ExtractorError as e:
            logger.error("Export failed: %s", e)
            return 1
        path = os.path.join(out_dir, payload.filename)
        with open(path, "wb") as f:
            f.write(payload.content)
        logger.info("Exported %s", os.path.abspath(path))

    if job.status is not JobStatus.COMPLETED:
        return 1
    return 0 if all(r.success for r in job.results) else 1


if __name__ == "__main__":
    raise SystemExit(main())
