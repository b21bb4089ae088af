#!/usr/bin/env python3
"""
CDM 集群 bootstrap 示例

展示如何用环境变量连接节点, bootstrap 一个 CCES (AWS) 集群并等待完成,
随后取得离线授权所需的节点信息。

需要的环境变量: RUBRIK_CDM_NODE_IP, RUBRIK_CDM_USERNAME, RUBRIK_CDM_PASSWORD
"""

import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from pypolaris.cdm import AWSStorageConfig, CDM, CDMOptions, ClusterConfig, NodeConfig, NTPServerConfig
from pypolaris.core import Context, PolarisError, PreconditionFailedError
from pypolaris.log import set_log_level_from_env


def build_cluster_config() -> ClusterConfig:
    """构造待 bootstrap 的集群配置 (替换为实际值)"""
    return ClusterConfig(
        cluster_name="cces-demo",
        cluster_nodes=[
            NodeConfig(name="node-1", management_ip="10.0.100.11"),
            NodeConfig(name="node-2", management_ip="10.0.100.12"),
            NodeConfig(name="node-3", management_ip="10.0.100.13"),
        ],
        management_gateway="10.0.100.1",
        management_subnet_mask="255.255.255.0",
        admin_email="admin@example.com",
        admin_password=os.environ.get("CLUSTER_ADMIN_PASSWORD", "change-me"),
        dns_servers=["169.254.169.253"],
        ntp_servers=[NTPServerConfig(server="169.254.169.123")],
        storage_config=AWSStorageConfig(bucket_name="cces-demo-bucket"),
    )


def main() -> int:
    set_log_level_from_env(default="INFO")

    # 节点在 bootstrap 前通常使用自签名证书
    cdm = CDM.from_env(CDMOptions(allow_insecure_tls=True))

    # 整个流程最多等待 1 小时
    with Context.background().with_timeout(3600) as ctx:
        try:
            request_id = cdm.bootstrap.bootstrap_cluster(ctx, build_cluster_config())
            print(f"bootstrap request id: {request_id}")
            cdm.bootstrap.wait_for_bootstrap(ctx, request_id)
            print("bootstrap finished")
        except PreconditionFailedError:
            print("cluster is already bootstrapped, skipping")
        except PolarisError as e:
            print(f"bootstrap failed: {e}")
            return 1

        for node in cdm.registration.offline_entitle(ctx):
            print(node.model_dump_json(by_alias=True))
    return 0


if __name__ == "__main__":
    sys.exit(main())
