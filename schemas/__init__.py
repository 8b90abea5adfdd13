from schemas.ocr import (
    OcrHints, OcrOutcome, ParsedReceipt
)
from schemas.receipt import (
    ReceiptUploadResponse, ReceiptCreate, ReceiptUpdate, ReceiptInDB,
    ReceiptResponse, ReceiptListResponse, ReceiptCategoriesResponse,
    ReceiptDeleteResponse, PaginationInfo, ErrorResponse
)

# Reports models
from schemas.reports.monthly import (
    MonthlyReport, MonthlyPeriod, CategoryStats, MonthOverview,
    MonthlyOverviewResponse, CategoryReport
)
