"""常量定义：集中维护状态码、条目类型与排序选项等魔法值。"""

HTTP_STATUS_OK = 200
HTTP_STATUS_BAD_REQUEST = 400
HTTP_STATUS_UNAUTHORIZED = 401
HTTP_STATUS_NOT_FOUND = 404
HTTP_STATUS_CONFLICT = 409
HTTP_STATUS_UNPROCESSABLE_ENTITY = 422
HTTP_STATUS_INTERNAL_SERVER_ERROR = 500

ACCESS_TOKEN_TYPE = "bearer"

# 目录条目类型
ENTRY_TYPE_FILE = "file"
ENTRY_TYPE_FOLDER = "folder"
ENTRY_TYPES = (ENTRY_TYPE_FILE, ENTRY_TYPE_FOLDER)

# 列表/搜索排序
SORT_BY_NAME = "name"
SORT_BY_DATE = "date"
SORT_BY_SIZE = "size"
SORT_KEYS = (SORT_BY_NAME, SORT_BY_DATE, SORT_BY_SIZE)
SORT_ORDER_ASC = "asc"
SORT_ORDER_DESC = "desc"

# 参考编码类别
REFERENCE_KIND_COMPANY = "company"
REFERENCE_KIND_ASSEMBLY = "assembly"
REFERENCE_KINDS = (REFERENCE_KIND_COMPANY, REFERENCE_KIND_ASSEMBLY)

# 顶层文件夹下自动创建的子文件夹
DEFAULT_TOP_LEVEL_SUBFOLDERS = ("2D-Drawing", "3D-Model")
