"""
API 请求 / 响应模型
"""
from typing import Any, Dict, List, Optional, Generic, TypeVar
from pydantic import BaseModel, Field

T = TypeVar('T')


class ApiResponse(BaseModel, Generic[T]):
    """统一 API 响应格式"""
    ok: bool = Field(description="操作是否成功")
    data: Optional[T] = Field(default=None, description="响应数据")
    error: Optional[Dict[str, Any]] = Field(default=None, description="错误信息（RFC7807 Problem Details）")
    metadata: Optional[Dict[str, Any]] = Field(default=None, description="元数据")

    @classmethod
    def success(cls, data: T, metadata: Optional[Dict[str, Any]] = None) -> "ApiResponse[T]":
        """创建成功响应"""
        return cls(ok=True, data=data, metadata=metadata)


class AddLocationRequest(BaseModel):
    """新增位置分区请求"""
    location_type: str = Field(description="位置类型：warehouse / vehicle")
    location_id: str = Field(min_length=1, description="仓库ID或车辆ID")
    quantity: int = Field(gt=0, description="分配数量")
    status: Optional[str] = Field(default=None, description="物料状态，缺省为 new_functional")


class ReportDefectRequest(BaseModel):
    """上报故障请求"""
    condition: str = Field(description="故障状态：totally_broken / working_urgent_change")
    reporter_id: Optional[str] = Field(default=None, description="上报人，缺省取 X-User-Id 请求头")
    vehicle_id: Optional[str] = Field(default=None, description="关联车辆，缺省取分区所在车辆")
    title: Optional[str] = Field(default=None, max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)
    images: List[str] = Field(default_factory=list, description="图片URL")


class RestoreRequest(BaseModel):
    """恢复入库请求"""
    incident_id: Optional[str] = Field(default=None, description="关联事故ID，缺省时自动查找")
    destination_type: Optional[str] = Field(default=None, description="目标位置类型：warehouse / vehicle")
    destination_id: Optional[str] = Field(default=None, description="目标位置ID")
