"""Reconciliation job for quotation revision chains.

Finds chains where a WON revision still has live siblings (a supersede that
failed after the WON commit) and supersedes them.

Usage:
  python scripts/reconcile_revisions.py            # repair
  python scripts/reconcile_revisions.py --dry-run  # report only
"""
import argparse
import logging

from erp_core.app.db import SessionLocal, create_db_and_tables
from erp_core.app.services.revisions import find_inconsistent_chains, reconcile_revision_chains

logger = logging.getLogger("reconcile_revisions")


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument('--dry-run', action='store_true', help='list inconsistent chains without changing them')
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")

    create_db_and_tables()
    db = SessionLocal()
    try:
        broken = find_inconsistent_chains(db)
        if not broken:
            logger.info('All revision chains are consistent')
            return
        for quotation_no, won_ids in sorted(broken.items()):
            logger.info('Chain %s: WON revision(s) %s have live siblings', quotation_no, won_ids)
        if args.dry_run:
            return

        count = reconcile_revision_chains(db)
        db.commit()
        logger.info('Superseded %d revision(s) across %d chain(s)', count, len(broken))
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == '__main__':
    main()
