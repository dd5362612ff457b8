"""Shared test doubles for snapshots, fetching and time."""

from sft_stackblitz import ProjectFile, ProjectSnapshot


def make_snapshot(files: dict[str, str], title: str = "Demo") -> ProjectSnapshot:
    """Snapshot whose files are stored in the given order."""
    return ProjectSnapshot(
        id=1,
        title=title,
        description="A demo project",
        slug="demo",
        preset="node",
        visibility="public",
        files={
            f"key-{i}": ProjectFile(
                name=path.split("/")[-1],
                type="file",
                contents=contents,
                full_path=path,
                last_modified=1700000000000,
            )
            for i, (path, contents) in enumerate(files.items())
        },
    )


class FakeFetcher:
    """Async fetch stand-in that records which IDs were requested."""

    def __init__(self, snapshots: dict[str, ProjectSnapshot] | None = None):
        self.snapshots = snapshots or {}
        self.calls: list[str] = []

    async def __call__(self, project_id: str) -> ProjectSnapshot:
        self.calls.append(project_id)
        if project_id in self.snapshots:
            return self.snapshots[project_id]
        return make_snapshot({"README.md": f"# {project_id}"}, title=project_id)


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds
