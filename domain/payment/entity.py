"""
支付领域实体 - 远端服务所拥有支付的只读快照
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional


class PaymentStatus(str, Enum):
    """支付状态枚举（由服务端上报）"""
    PENDING = "PENDING"                 # 待支付
    PARTIALLY_PAID = "PARTIALLY_PAID"   # 部分支付，等待补足
    CONFIRMED = "CONFIRMED"             # 已确认（终态）
    EXPIRED = "EXPIRED"                 # 已过期（终态）
    FAILED = "FAILED"                   # 支付失败（终态）
    CANCELLED = "CANCELLED"             # 已取消（终态）


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """确保时间为 UTC 时区（无时区信息视为 UTC）"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def freeze(value: Any) -> Any:
    """递归冻结：映射转为只读 MappingProxyType，列表/集合转为元组"""
    if isinstance(value, Mapping):
        return MappingProxyType({k: freeze(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze(v) for v in value)
    if isinstance(value, (set, frozenset)):
        return frozenset(freeze(v) for v in value)
    return value


def thaw(value: Any) -> Any:
    """freeze 的逆操作，得到可序列化的普通 dict/list"""
    if isinstance(value, Mapping):
        return {k: thaw(v) for k, v in value.items()}
    if isinstance(value, tuple):
        return [thaw(v) for v in value]
    if isinstance(value, frozenset):
        return [thaw(v) for v in value]
    return value


@dataclass(frozen=True)
class Payment:
    """
    支付快照 - 获取或接收时刻的支付状态

    业务规则：
    1. 标识（id）由服务端分配，永不改变
    2. 奖励字段一次写入：创建时确定，客户端任何操作都无法修改
    3. metadata 与 reward_data 逐层只读
    4. 相等性比较全部字段，哈希仅基于 id
    """

    id: str
    amount: Optional[Decimal]
    currency: Optional[str]
    status: PaymentStatus
    created_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    tx_hash: Optional[str] = None

    # 奖励信息（创建时锁定）
    reward_amount: Optional[Decimal] = None
    reward_currency: Optional[str] = None
    reward_data: Optional[Mapping[str, Any]] = None

    metadata: Mapping[str, Any] = field(default_factory=dict)

    # 服务端透传的结算信息
    amount_paid: Optional[Decimal] = None
    chain: Optional[str] = None
    token: Optional[str] = None
    pay_address: Optional[str] = None
    crypto_amount: Optional[Decimal] = None
    checkout_url: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "created_at", _ensure_utc(self.created_at))
        object.__setattr__(self, "expires_at", _ensure_utc(self.expires_at))
        object.__setattr__(self, "confirmed_at", _ensure_utc(self.confirmed_at))
        object.__setattr__(self, "metadata", freeze(self.metadata or {}))
        if self.reward_data is not None:
            object.__setattr__(self, "reward_data", freeze(self.reward_data))

    def __hash__(self) -> int:
        return hash((Payment, self.id))

    @property
    def reward(self) -> tuple[Optional[Decimal], Optional[str], Optional[dict[str, Any]]]:
        """奖励字段元组（普通 dict，便于比较）"""
        data = thaw(self.reward_data) if self.reward_data is not None else None
        return self.reward_amount, self.reward_currency, data


@dataclass(frozen=True)
class WebhookEvent:
    """已验签的 Webhook 通知，按请求构建，不做持久化"""

    event: str
    payment: Payment
    timestamp: Optional[datetime] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "timestamp", _ensure_utc(self.timestamp))


@dataclass(frozen=True)
class MerchantBalance:
    chain: str
    currency: str
    available: Decimal
    pending: Decimal = Decimal("0")
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class Withdrawal:
    id: str
    chain: str
    amount: Decimal
    currency: str
    address: str
    status: str
    tx_hash: Optional[str] = None
    created_at: Optional[datetime] = None
