"""
Import lesson content from a JSON file.

Usage:
    python scripts/import_lessons.py data/lessons/agent.json
    python scripts/import_lessons.py data/lessons/lead.json --mode=skip
    python scripts/import_lessons.py lessons.json --env production

The file is a JSON array of objects with role_level, day_number, title,
lesson_text, action_text (or action_step) and reflection_question.
Nothing is written unless the whole file validates.
"""

import argparse
import json
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from microcoach import create_app
from microcoach.core.exceptions import ValidationError
from microcoach.services.lesson_import_service import (
    IMPORT_MODES,
    import_lessons,
    load_lesson_file,
)


def main():
    parser = argparse.ArgumentParser(description="Import lessons from a JSON file")
    parser.add_argument("path", help="Path to the lesson JSON file")
    parser.add_argument("--mode", choices=IMPORT_MODES, default="upsert",
                        help="upsert: overwrite existing lessons; skip: insert missing only")
    parser.add_argument("--env", default=os.getenv("APP_ENV", "development"), help="App environment")
    args = parser.parse_args()

    app = create_app(args.env)

    with app.app_context():
        try:
            lessons = load_lesson_file(args.path)
        except ValidationError as e:
            print(f"Validation failed: {e}", file=sys.stderr)
            if e.details:
                print(json.dumps(e.details, indent=2), file=sys.stderr)
            sys.exit(1)
        except OSError as e:
            print(f"Cannot read {args.path}: {e}", file=sys.stderr)
            sys.exit(1)

        result = import_lessons(lessons, mode=args.mode)
        print("Import complete:", json.dumps({"file": args.path, **result}))


if __name__ == "__main__":
    main()
