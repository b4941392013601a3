""""模块职能：

网关的异常分类。每个异常自带 HTTP 状态码与对外文案（public_message），
由 main.py 注册的异常处理器统一转成纯文本响应；内部细节（驱动报错、SQL）只进日志。

| 异常                      | 状态码 |
|---------------------------|--------|
| ConfigurationError        | 500    |
| SchemaIntrospectionError  | 500    |
| QueryExecutionError       | 500    |
| OversizedRequestError     | 413    |
| AuthorizationDenied       | 403    |
| NotFound                  | 404    |
| BadRequest                | 400    |"""

from typing import Optional


class GatewayError(Exception):
    status_code = 500
    public_message = "Internal Server Error"
    event = "gateway_error"

    def __init__(self, detail: str = "", *, public_message: Optional[str] = None):
        super().__init__(detail or self.public_message)
        self.detail = detail
        if public_message is not None:
            self.public_message = public_message


class ConfigurationError(GatewayError):
    event = "config_error"


class SchemaIntrospectionError(GatewayError):
    event = "schema_error"


class QueryExecutionError(GatewayError):
    event = "query_error"


class OversizedRequestError(GatewayError):
    status_code = 413
    public_message = "Request Entity Too Large"
    event = "put_too_large"


class AuthorizationDenied(GatewayError):
    status_code = 403
    public_message = "Forbidden"
    event = "put_denied"


class NotFound(GatewayError):
    status_code = 404
    public_message = "Not Found"
    event = "not_found"


class BadRequest(GatewayError):
    status_code = 400
    public_message = "Bad Request"
    event = "bad_request"

    def __init__(self, detail: str = ""):
        # 400 的原因对调用方有用（start/end 用法、未知字段），直接回显
        super().__init__(detail, public_message=detail or self.public_message)
