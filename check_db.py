import argparse
import os
import sys

# Add the project root to the Python path
sys.path.insert(0, os.path.abspath(os.path.dirname(__file__)))

from app import create_app
from extensions import db
from grading import recover_stalled_grading
from models import StudentInterview
from utilities.constants import INTERVIEW_STATUSES, STATUS_GRADING


def query_database(recover=False):
    """Prints interview counts per status and every interview currently in Grading."""
    app = create_app({'RECOVER_STALLED_GRADING': False})
    with app.app_context():
        print("--- Querying Database ---")
        for status in INTERVIEW_STATUSES:
            count = db.session.scalar(
                db.select(db.func.count(StudentInterview.id)).where(StudentInterview.status == status)
            )
            print(f"{status:<10} {count}")

        grading = db.session.execute(
            db.select(StudentInterview).where(StudentInterview.status == STATUS_GRADING)
        ).scalars().all()
        if not grading:
            print("\nNo interviews are being graded.")
        else:
            print(f"\nFound {len(grading)} interview(s) in Grading:")
            for interview in grading:
                print(f"  Interview {interview.id} (application {interview.application_id}), "
                      f"last update {interview.updated_at}")

        if recover:
            released = recover_stalled_grading()
            print(f"\nReleased {len(released)} stalled interview(s): {released}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Inspect the interview tables.")
    parser.add_argument('--recover', action='store_true',
                        help="put interviews stuck in Grading without a live lease back to Submitted")
    args = parser.parse_args()
    query_database(recover=args.recover)
