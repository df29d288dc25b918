"""Memory lifecycle — categorized entries, branches, compaction, defrag.

Layout:
    <project>/.context/
    ├── main.md                        # Project overview
    ├── config.yaml                    # Settings + active branch
    ├── system/                        # Pinned, always-loaded context
    ├── memory/
    │   ├── decisions.md               # - [date time] text   (append-only)
    │   ├── patterns.md
    │   ├── mistakes.md
    │   ├── notes.md
    │   └── lessons.md                 # ### [date time] title blocks
    ├── branches/
    │   └── try-redis/                 # purpose.md, commits.md, trace.md
    │       └── memory/                # Only files written on the branch
    ├── reflections/
    │   └── 2026-02-18.md              # Front-matter: window + counts
    ├── archive/
    │   └── compact-2026-02-18/        # Dropped entries, verbatim
    ├── .reflect-state.json            # Breadcrumb between gather and save
    └── .git/                          # Dedicated history for the memory root

The lock file `.context.lock` sits next to `.context/`, never inside it.
"""
