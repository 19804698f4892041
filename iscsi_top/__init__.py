"""iscsi-top — top-подібний монітор iSCSI target.

Read-only attach до shm-регіонів продюсера (з'єднання + per-lcore
лічильники). Нічого не пише в регіони і не синхронізується з продюсером.

Запуск: python -m iscsi_top [-i INSTANCE]
"""
