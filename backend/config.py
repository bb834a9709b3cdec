import os
from pathlib import Path

# Base paths
BASE_DIR = Path(__file__).parent.parent
DATA_DIR = Path(os.getenv("JUDGE_DATA_DIR", str(BASE_DIR / "data")))

# Create directories
DATA_DIR.mkdir(parents=True, exist_ok=True)

# Execution backends
PISTON_URL = os.getenv("PISTON_URL", "https://emkc.org/api/v2/piston")
JUDGE0_URL = os.getenv("JUDGE0_URL", "https://judge0-ce.p.rapidapi.com")
JUDGE0_HOST = os.getenv("JUDGE0_HOST", "judge0-ce.p.rapidapi.com")
JUDGE0_API_KEY = os.getenv("JUDGE0_API_KEY", "")
HTTP_TIMEOUT = float(os.getenv("EXECUTION_HTTP_TIMEOUT", "30"))  # s
COMPILE_TIMEOUT = 10000  # ms
JUDGE0_POLL_INTERVAL = 0.5  # s
JUDGE0_MAX_POLLS = 20

# Language catalog: one id per execution backend
LANGUAGES = {
    "javascript": {
        "name": "JavaScript",
        "piston_id": "javascript",
        "judge0_id": 63,
        "extension": "js",
        "default_code": (
            "// Your JavaScript solution here\n\n"
            "function solution(input) {\n"
            "  // Write your code here\n"
            "  return input;\n"
            "}\n\n"
            "// Read input and call solution\n"
            "const input = require(\"fs\").readFileSync(0, \"utf-8\").trim();\n"
            "console.log(solution(input));"
        ),
    },
    "python": {
        "name": "Python",
        "piston_id": "python",
        "judge0_id": 71,
        "extension": "py",
        "default_code": (
            "# Your Python solution here\n\n"
            "def solution(input_data):\n"
            "    # Write your code here\n"
            "    return input_data\n\n"
            "if __name__ == \"__main__\":\n"
            "    import sys\n"
            "    input_data = sys.stdin.read().strip()\n"
            "    print(solution(input_data))"
        ),
    },
    "cpp": {
        "name": "C++",
        "piston_id": "c++",
        "judge0_id": 54,
        "extension": "cpp",
        "default_code": (
            "#include <iostream>\n#include <string>\nusing namespace std;\n\n"
            "int main() {\n"
            "    string input;\n"
            "    getline(cin, input);\n"
            "    cout << input << endl;\n"
            "    return 0;\n"
            "}"
        ),
    },
    "java": {
        "name": "Java",
        "piston_id": "java",
        "judge0_id": 62,
        "extension": "java",
        "default_code": (
            "import java.util.*;\n\n"
            "public class Main {\n"
            "    public static void main(String[] args) {\n"
            "        Scanner scanner = new Scanner(System.in);\n"
            "        String input = scanner.nextLine();\n"
            "        System.out.println(input);\n"
            "    }\n"
            "}"
        ),
    },
    "typescript": {
        "name": "TypeScript",
        "piston_id": "typescript",
        "judge0_id": 74,
        "extension": "ts",
        "default_code": (
            "function solution(input: string): string {\n"
            "  return input;\n"
            "}\n\n"
            "const input = require(\"fs\").readFileSync(0, \"utf-8\").trim();\n"
            "console.log(solution(input));"
        ),
    },
    "rust": {
        "name": "Rust",
        "piston_id": "rust",
        "judge0_id": 73,
        "extension": "rs",
        "default_code": (
            "use std::io::{self, BufRead};\n\n"
            "fn main() {\n"
            "    let stdin = io::stdin();\n"
            "    let input = stdin.lock().lines().next().unwrap().unwrap();\n"
            "    println!(\"{}\", input);\n"
            "}"
        ),
    },
    "go": {
        "name": "Go",
        "piston_id": "go",
        "judge0_id": 60,
        "extension": "go",
        "default_code": (
            "package main\n\n"
            "import (\n    \"bufio\"\n    \"fmt\"\n    \"os\"\n)\n\n"
            "func main() {\n"
            "    scanner := bufio.NewScanner(os.Stdin)\n"
            "    scanner.Scan()\n"
            "    fmt.Println(scanner.Text())\n"
            "}"
        ),
    },
    "sql": {
        "name": "SQL",
        "piston_id": "sql",
        "judge0_id": None,
        "extension": "sql",
        "default_code": "-- Write your SQL query here\nSELECT 1 as col;",
    },
}

# Judge settings
MAX_CONCURRENT_JUDGES = 4
DEFAULT_TIME_LIMIT = 5000  # ms
DEFAULT_MEMORY_LIMIT = 256  # MB
DEFAULT_FLOAT_TOLERANCE = 1e-6

# Rate limiting (per session)
RATE_LIMIT_MAX_ATTEMPTS = 2
RATE_LIMIT_WINDOW_MS = 60 * 1000
RATE_LIMIT_COOLDOWN_MS = 60 * 1000

# Judge sessions kept in memory before idle ones are evicted
MAX_SESSIONS = int(os.getenv("JUDGE_MAX_SESSIONS", "1000"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Database
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite+aiosqlite:///{DATA_DIR}/judge.db")
