from marshmallow import Schema, fields, post_load, EXCLUDE, ValidationError

# 欄位值不合法時被丟掉的標記 (更新時用)
DROPPED = object()


class CoercedChoice(fields.Field):
    """
    列舉欄位 (status / priority / language) 的統一處理

    不合法的值不回傳錯誤,而是換成 fallback:
    - 建立資料時 fallback 是預設值 (例如 'todo')
    - 更新資料時 fallback 是 DROPPED,由 PartialUpdateSchema 移除該欄位
    """

    def __init__(self, choices, fallback=DROPPED, **kwargs):
        self.choices = tuple(choices)
        self.fallback = fallback
        super().__init__(**kwargs)

    def deserialize(self, value, attr=None, data=None, **kwargs):
        # null 也算不合法的值,不走 allow_none 的錯誤訊息
        if value is None:
            return self.fallback
        return super().deserialize(value, attr, data, **kwargs)

    def _deserialize(self, value, attr, data, **kwargs):
        if isinstance(value, str) and value in self.choices:
            return value
        return self.fallback


class BaseSchema(Schema):
    """前端會把整個物件送回來,多的欄位直接忽略"""

    class Meta:
        unknown = EXCLUDE


class PartialUpdateSchema(BaseSchema):
    """部分更新用的 schema,會移除被 CoercedChoice 丟掉的欄位"""

    @post_load
    def strip_dropped(self, data, **kwargs):
        return {key: value for key, value in data.items() if value is not DROPPED}


def coerce_choice(value, choices, default):
    """單一值的 silent coercion,給不經過 schema 的地方用"""
    return value if isinstance(value, str) and value in choices else default


def validate_request_data(schema_class, data):
    """
    統一的輸入驗證函數

    Returns:
        tuple: (is_valid, data_or_errors)
    """
    schema = schema_class()
    try:
        validated_data = schema.load(data)
        return True, validated_data
    except ValidationError as err:
        return False, err.messages


def has_recognized_fields(schema_class, data):
    """request body 是否至少帶了一個 schema 認得的欄位 (不管值合不合法)"""
    if not isinstance(data, dict):
        return False
    schema = schema_class()
    keys = {field.data_key or name for name, field in schema.fields.items()}
    return any(key in data for key in keys)
