#!/usr/bin/env python3
"""
DM-master 成员扩缩容演示

展示：
1. 首次 reconcile 创建副本集
2. 逐个成员扩容（每次只变化一个序号）
3. 缩容时 leader 先迁移，再删除成员并标记存储延迟删除
4. 通过 delete slot 删除中间序号，保留更高序号成员的身份
"""

import ray

from memberscale.config.policy import LABEL_COMPONENT, LABEL_INSTANCE, LABEL_POD_NAME, MemberType
from memberscale.core import ScalingController
from memberscale.core.control.membership import FakeMembershipClient
from memberscale.core.entities import ClusterMeta, ClusterSyncStatus, MemberInfo, StorageClaim
from memberscale.core.utils import demote_ray_logging, install_stdout_logger

CLUSTER = "demo"
ROLE = MemberType.DM_MASTER.value


def build_meta(leader=None):
    status = ClusterSyncStatus(synced=True, leader=MemberInfo(name=leader) if leader else None)
    return ClusterMeta(namespace="default", name=CLUSTER, status={MemberType.DM_MASTER: status})


def claim_for(ordinal):
    return StorageClaim(
        namespace="default",
        name=f"{ROLE}-{CLUSTER}-{ROLE}-{ordinal}",
        labels={
            LABEL_INSTANCE: CLUSTER,
            LABEL_COMPONENT: ROLE,
            LABEL_POD_NAME: f"{CLUSTER}-{ROLE}-{ordinal}",
        },
    )


def show(title, payload):
    view = payload.get("replica_set") or {}
    print(
        f"   {title}: outcome={payload.get('outcome')} "
        f"replicas={view.get('replicas')} delete_slots={view.get('delete_slots')} "
        f"passes={payload.get('passes', 1)}"
    )


def main():
    install_stdout_logger(include_timestamp=False)
    demote_ray_logging()
    ray.init(ignore_reinit_error=True, local_mode=True)

    controller = ScalingController("dm-master-demo")
    try:
        print("\n" + "=" * 60)
        print("示例 1: 创建并扩容")
        print("=" * 60)
        meta = build_meta(leader=f"{CLUSTER}-{ROLE}-2")
        show("创建", controller.reconcile(meta, ROLE, 3))

        members = [f"{CLUSTER}-{ROLE}-{i}" for i in range(5)]
        controller.register_membership(meta, ROLE, FakeMembershipClient(members=members, leader=members[2]))
        for ordinal in range(6):
            controller.seed_storage_claim(meta, claim_for(ordinal))

        show("扩容到 5", controller.converge(meta, ROLE, 5, requeue_interval=0))

        print("\n" + "=" * 60)
        print("示例 2: 缩容（leader 迁移后再删除）")
        print("=" * 60)
        statuses = [build_meta(leader=f"{CLUSTER}-{ROLE}-4"), build_meta(leader=f"{CLUSTER}-{ROLE}-0")]

        def refresh_status(current):
            # 第一次观察到序号 4 是 leader，之后 leader 已迁移到序号 0
            return statuses.pop(0) if statuses else current

        result = controller.converge(meta, ROLE, 4, requeue_interval=0.1, status_provider=refresh_status)
        show("缩容到 4", result)
        print(f"   requeues={result['requeues']}")
        marked = controller.get_storage_claim(meta, claim_for(4).name)
        print(f"   存储声明 {marked['name']} 注解: {marked['annotations']}")

        print("\n" + "=" * 60)
        print("示例 3: 删除中间序号 1")
        print("=" * 60)
        meta = build_meta(leader=f"{CLUSTER}-{ROLE}-0")
        show("delete_slots=[1]", controller.converge(meta, ROLE, 3, delete_slots=[1], requeue_interval=0))

        print("\n成员 API 调用记录:")
        for op, name in controller.membership_calls(meta, ROLE):
            print(f"   {op} {name}")

        print("\n事件:")
        for event in controller.list_events(meta):
            print(f"   [{event['type']}] {event['reason']}: {event['message']}")
    finally:
        controller.shutdown()
        ray.shutdown()


if __name__ == "__main__":
    main()
