"""
Power ratings services.

- name_resolver: maps any source vocabulary to canonical rating keys
- engine: pure adjustment math
- closing_lines: closing-line acquisition with an injected TTL cache
- game_processor: applies one game's adjustment to the rating store
- orchestrator: sync runs over completed games
- recalculation: deterministic replay of the adjustment history
- overrides / override_repair: operator overrides and the backfill they trigger
"""
