"""
Command-line duplicate report.

Prints likely-duplicate account groups and the integrity scan without
changing any data. Useful before a clean-up session:

    entity-merge-report --mode both
    entity-merge-report --integrity
"""
import argparse
import json
import logging
import sys
from typing import List, Optional

from entity_merge.core.config import get_settings
from entity_merge.core.database import get_session_factory
from entity_merge.core.gateway import SqlAlchemyGateway
from entity_merge.matching.types import DuplicateCluster, GroupingMode
from entity_merge.services.lookup_service import LookupService
from entity_merge.services.similarity_service import SimilarityService

logger = logging.getLogger(__name__)


def format_cluster(cluster: DuplicateCluster) -> str:
    lines = [
        f"{cluster.label}  [{cluster.match_basis.value}, score {cluster.score:.2f}, "
        f"{cluster.size} accounts]"
    ]
    for member in cluster.members:
        location = member.first_location
        where = ""
        if location is not None:
            parts = [p for p in location.address_parts().values() if p]
            where = f" - {', '.join(parts)}" if parts else ""
            if location.kind == "synthesized":
                where += " (udf)"
        lines.append(f"    #{member.account_id} {member.name}{where}")
    return "\n".join(lines)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Report likely-duplicate CRM accounts")
    parser.add_argument(
        "--mode",
        choices=[m.value for m in GroupingMode],
        default=GroupingMode.NAME.value,
        help="Group by name, address or both (default: name)",
    )
    parser.add_argument("--limit", type=int, default=None, help="Show at most this many groups")
    parser.add_argument("--json", action="store_true", help="Print JSON instead of text")
    parser.add_argument("--integrity", action="store_true", help="Run the orphan scan instead")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=get_settings().log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    db = get_session_factory()()
    try:
        if args.integrity:
            report = LookupService(db).integrity_report()
            print(json.dumps(report, indent=2))
            return 0 if report["ok"] else 1

        clusters = SimilarityService(SqlAlchemyGateway(db)).find_candidates(GroupingMode(args.mode))
        if args.limit is not None:
            clusters = clusters[: args.limit]

        if args.json:
            print(json.dumps([c.to_dict() for c in clusters], indent=2))
        else:
            for cluster in clusters:
                print(format_cluster(cluster))
                print()
            print(f"{len(clusters)} groups")
        return 0
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
