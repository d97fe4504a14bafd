import re
from pathlib import Path

from prepbanker.app import create_app

PATTERN = re.compile(r"url_for\(\s*['\"]([a-z_]+\.[A-Za-z0-9_]+)['\"]")


def collect_references(tmpl_root: Path) -> dict[str, set[str]]:
    refs: dict[str, set[str]] = {}
    for p in tmpl_root.rglob("*.html"):
        txt = p.read_text(encoding="utf-8", errors="ignore")
        for m in PATTERN.finditer(txt):
            refs.setdefault(m.group(1), set()).add(str(p.relative_to(tmpl_root)))
    return refs


def find_missing(app, tmpl_root: Path) -> dict[str, set[str]]:
    refs = collect_references(tmpl_root)
    endpoints = {r.endpoint for r in app.url_map.iter_rules()}
    return {ep: files for ep, files in sorted(refs.items()) if ep not in endpoints}


def main() -> int:
    app = create_app()
    tmpl_root = Path(__file__).resolve().parent / "templates"

    refs = collect_references(tmpl_root)
    missing = find_missing(app, tmpl_root)

    print(f"Endpoints referenced in templates: {len(refs)}")
    print(f"Endpoints registered in app: {len(list(app.url_map.iter_rules()))}")

    print(f"\nMissing endpoints (referenced but not registered): {len(missing)}")
    for ep, files in missing.items():
        print(f"- {ep} <= {', '.join(sorted(files))}")

    return 0 if not missing else 1


if __name__ == "__main__":
    raise SystemExit(main())
